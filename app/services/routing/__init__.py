"""
Routing gateway - travel routes, distance formatting and nearest-report lookup.
"""

from app.services.routing.base import RoutingProvider
from app.services.routing.osrm_provider import OSRMProvider
from app.services.routing.gateway import (
    RoutingGateway,
    find_nearest_report,
    format_distance,
    format_duration,
    get_routing_gateway,
)

__all__ = [
    "RoutingProvider",
    "OSRMProvider",
    "RoutingGateway",
    "find_nearest_report",
    "format_distance",
    "format_duration",
    "get_routing_gateway",
]
