"""OSRM routing client.

Queries the OSRM HTTP route service for driving distance, duration and
geometry between ordered coordinates:

    GET {base}/route/v1/{profile}/{lon},{lat};{lon},{lat}?overview=full&geometries=geojson

Coordinates are (lat, lon) pairs on the way in; OSRM wants lon,lat and
returns GeoJSON [lon, lat] pairs, which are stored as-is.
"""

import logging
from typing import Optional, Sequence, Tuple

import httpx

from core.config import settings
from src.itinerary_bc.leg.domain.entities import LegMetrics
from src.itinerary_bc.routing.domain.exceptions import RoutingProviderError, RoutingProviderTimeoutError

logger = logging.getLogger(__name__)

PROVIDER_NAME = "OSRM"


class OsrmClient:
    """Synchronous client for the OSRM route service."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        profile: Optional[str] = None,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.Client] = None,
    ):
        self.base_url = (base_url or settings.osrm.OSRM_BASE_URL).rstrip("/")
        self.profile = profile or settings.osrm.OSRM_PROFILE
        self.timeout = timeout if timeout is not None else settings.osrm.OSRM_TIMEOUT_SECONDS
        self._client = http_client or httpx.Client(timeout=self.timeout)

    def close(self) -> None:
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def _build_url(self, coordinates: Sequence[Tuple[float, float]]) -> str:
        path = ";".join(f"{lon},{lat}" for lat, lon in coordinates)
        return f"{self.base_url}/route/v1/{self.profile}/{path}"

    def route(self, coordinates: Sequence[Tuple[float, float]]) -> LegMetrics:
        """Route through the given (lat, lon) coordinates in order.

        Raises:
            RoutingProviderTimeoutError: OSRM did not answer within the timeout.
            RoutingProviderError: transport failure, HTTP error or no route found.
        """
        if len(coordinates) < 2:
            raise ValueError("At least two coordinates are required for routing")

        url = self._build_url(coordinates)
        try:
            response = self._client.get(
                url,
                params={"overview": "full", "geometries": "geojson"},
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException as e:
            logger.error(f"OSRM timeout after {self.timeout}s: {url}")
            raise RoutingProviderTimeoutError(f"OSRM did not respond within {self.timeout}s") from e
        except httpx.HTTPError as e:
            logger.error(f"HTTP error calling OSRM: {e}")
            raise RoutingProviderError(f"OSRM request failed: {e}") from e
        except ValueError as e:
            logger.error(f"Invalid JSON from OSRM: {e}")
            raise RoutingProviderError("OSRM returned an invalid response") from e

        if data.get("code") != "Ok" or not data.get("routes"):
            message = data.get("message") or data.get("code") or "no route"
            logger.error(f"OSRM returned no route: {message}")
            raise RoutingProviderError(f"OSRM returned no route: {message}")

        route = data["routes"][0]
        geometry = (route.get("geometry") or {}).get("coordinates") or []
        return LegMetrics(
            distance_meters=int(round(route.get("distance", 0))),
            duration_seconds=int(round(route.get("duration", 0))),
            geometry=[[float(c[0]), float(c[1])] for c in geometry],
            provider=PROVIDER_NAME,
        )

    def route_pair(
        self,
        from_lat: float,
        from_lon: float,
        to_lat: float,
        to_lon: float,
    ) -> LegMetrics:
        """Route a single leg between two points."""
        return self.route([(from_lat, from_lon), (to_lat, to_lon)])

