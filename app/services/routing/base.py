from abc import ABC, abstractmethod
from typing import Tuple
import logging

from app.models.report import RouteResult

logger = logging.getLogger(__name__)


class RoutingProvider(ABC):
    """
    Abstract travel-route provider.

    Contract:
    - Input: origin and destination as (latitude, longitude) pairs
    - Output: RouteResult with distance (m), duration (s) and a
      (lat, lon) geometry
    - Raises RouteUnavailableError on timeout, failure response or
      "no route"; the gateway turns that into a returned RouteUnavailable.
    - Implementations must enforce a network timeout.
    """

    name = "unknown"

    @abstractmethod
    def route(self, origin: Tuple[float, float], destination: Tuple[float, float]) -> RouteResult:
        raise NotImplementedError
