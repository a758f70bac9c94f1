import logging
from typing import Any, Dict, Optional, Tuple

import requests

from app.core.errors import RouteUnavailableError
from app.core.settings import settings
from app.models.report import RouteResult
from app.utils.retry import call_with_retry
from .base import RoutingProvider

logger = logging.getLogger(__name__)


class OSRMProvider(RoutingProvider):
    """
    OSRM HTTP routing provider (public demo server by default).

    - No API key required.
    - OSRM speaks (lon, lat); results are converted to (lat, lon).
    - Every request carries PROVIDER_TIMEOUT_SECONDS; network errors and
      5xx answers are retried PROVIDER_MAX_RETRIES times.
    """

    name = "osrm"
    PROFILES = ("driving", "walking", "cycling")

    def __init__(
        self,
        base_url: Optional[str] = None,
        profile: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        user_agent: str = "civic-triage/1.0",
    ):
        self.base_url = (base_url or settings.ROUTING_BASE_URL).rstrip("/")
        self.profile = profile or settings.ROUTING_PROFILE
        if self.profile not in self.PROFILES:
            logger.warning(f"Unknown routing profile '{self.profile}', using driving")
            self.profile = "driving"
        self.timeout = timeout if timeout is not None else settings.PROVIDER_TIMEOUT_SECONDS
        self.max_retries = max_retries if max_retries is not None else settings.PROVIDER_MAX_RETRIES
        self.user_agent = user_agent

    def _request(self, url: str) -> Dict[str, Any]:
        resp = requests.get(
            url,
            params={"overview": "full", "geometries": "geojson"},
            headers={"User-Agent": self.user_agent},
            timeout=self.timeout,
        )
        if resp.status_code >= 500:
            raise requests.exceptions.HTTPError(f"OSRM API error: {resp.status_code}")
        if resp.status_code != 200:
            raise RouteUnavailableError(f"OSRM API error: {resp.status_code}")
        return resp.json()

    def route(self, origin: Tuple[float, float], destination: Tuple[float, float]) -> RouteResult:
        from_lat, from_lon = origin
        to_lat, to_lon = destination
        url = f"{self.base_url}/route/v1/{self.profile}/{from_lon},{from_lat};{to_lon},{to_lat}"

        logger.info(f"Fetching route from OSRM: {origin} -> {destination} ({self.profile})")
        try:
            data = call_with_retry(
                lambda: self._request(url),
                max_retries=self.max_retries,
                delay_seconds=settings.PROVIDER_RETRY_DELAY_SECONDS,
                retry_on=(requests.exceptions.Timeout, requests.exceptions.ConnectionError, requests.exceptions.HTTPError),
                description="OSRM route",
            )
        except requests.exceptions.RequestException as e:
            raise RouteUnavailableError(f"OSRM request failed: {e}")
        except ValueError as e:
            raise RouteUnavailableError(f"OSRM returned invalid JSON: {e}")

        routes = data.get("routes") or []
        if data.get("code") != "Ok" or not routes:
            raise RouteUnavailableError(data.get("message") or "No route found")

        route = routes[0]
        coordinates = (route.get("geometry") or {}).get("coordinates") or []
        geometry = [(float(c[1]), float(c[0])) for c in coordinates]

        logger.info(f"Route calculated: {route.get('distance')} m, {route.get('duration')} s")
        return RouteResult(
            distance_meters=float(route.get("distance") or 0.0),
            duration_seconds=float(route.get("duration") or 0.0),
            geometry=geometry,
        )
