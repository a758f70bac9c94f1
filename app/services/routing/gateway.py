import logging
import math
from typing import Iterable, Optional, Tuple, Union

from app.core.errors import RouteUnavailableError
from app.models.report import NearestReport, Report, RouteResult, RouteUnavailable
from app.utils.geometry import haversine_distance, validate_coordinate
from .base import RoutingProvider
from .osrm_provider import OSRMProvider

logger = logging.getLogger(__name__)


def _round_half_up(value: float) -> int:
    # Halves round up (2.5 -> 3), not to even
    return int(math.floor(value + 0.5))


def format_distance(meters: float) -> str:
    """'850 m' below one kilometre, '1.2 km' above."""
    if meters < 1000:
        return f"{_round_half_up(meters)} m"
    return f"{meters / 1000:.1f} km"


def format_duration(seconds: float) -> str:
    """'45 sec', '12 min' or '1h 5min'."""
    if seconds < 60:
        return f"{_round_half_up(seconds)} sec"
    if seconds < 3600:
        return f"{_round_half_up(seconds / 60)} min"
    hours = int(seconds // 3600)
    minutes = _round_half_up((seconds % 3600) / 60)
    return f"{hours}h {minutes}min"


def find_nearest_report(origin: Tuple[float, float], candidates: Iterable[Report]) -> Optional[NearestReport]:
    """
    Nearest coordinate-bearing candidate by great-circle distance.

    Ties are broken by the lowest report id. Returns None when no
    candidate has a coordinate.
    """
    origin = validate_coordinate(*origin)
    best: Optional[NearestReport] = None
    for report in candidates:
        if not report.has_location:
            continue
        distance = haversine_distance(origin, (report.latitude, report.longitude))
        if (
            best is None
            or distance < best.distance_meters
            or (distance == best.distance_meters and report.id < best.report_id)
        ):
            best = NearestReport(
                report_id=report.id,
                latitude=report.latitude,
                longitude=report.longitude,
                distance_meters=distance,
            )
    return best


class RoutingGateway:
    """
    Wraps a RoutingProvider so callers never see a routing exception.
    """

    def __init__(self, provider: RoutingProvider):
        self.provider = provider

    def route(
        self, origin: Tuple[float, float], destination: Tuple[float, float]
    ) -> Union[RouteResult, RouteUnavailable]:
        """
        Route between two (lat, lon) points.

        Malformed coordinates raise ValidationError. Any provider failure
        comes back as RouteUnavailable with the straight-line distance.
        """
        origin = validate_coordinate(*origin)
        destination = validate_coordinate(*destination)
        try:
            return self.provider.route(origin, destination)
        except RouteUnavailableError as e:
            logger.warning(f"Route unavailable ({self.provider.name}): {e.message}; using straight-line distance")
            return RouteUnavailable(
                reason=e.message,
                straight_line_meters=haversine_distance(origin, destination),
            )


_gateway: Optional[RoutingGateway] = None


def get_routing_gateway() -> RoutingGateway:
    """Get or create the RoutingGateway singleton (OSRM provider)."""
    global _gateway
    if _gateway is None:
        _gateway = RoutingGateway(OSRMProvider())
    return _gateway
