"""Fills travel metrics of legs from the routing provider."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List

from src.itinerary_bc.route.domain.entities import Route
from src.itinerary_bc.routing.domain.exceptions import RoutingProviderError
from src.itinerary_bc.routing.infrastructure.services.osrm_client import OsrmClient

logger = logging.getLogger(__name__)


@dataclass
class LegRefreshResult:
    refreshed: List[str] = field(default_factory=list)  # leg ids
    skipped: List[str] = field(default_factory=list)  # a stop has no coordinates
    failed: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def has_failures(self) -> bool:
        return bool(self.failed)


class LegRoutingService:
    """Asks the routing provider for every leg that needs it.

    Legs whose request fails keep their previous metrics and stay flagged
    needs_routing, so a later refresh picks them up again.
    """

    def __init__(self, client: OsrmClient):
        self.client = client

    def refresh_legs(self, route: Route, force: bool = False, fail_fast: bool = False) -> LegRefreshResult:
        """Route pending legs (or every leg when force is set), in place.

        With fail_fast the first provider error is raised instead of being
        collected on the result.
        """
        result = LegRefreshResult()
        legs = route.legs if force else route.pending_legs

        for leg in legs:
            origin = route.get_stop(leg.from_stop_id)
            destination = route.get_stop(leg.to_stop_id)
            if not (origin.has_coordinates and destination.has_coordinates):
                logger.debug(f"Leg {leg.id}: missing coordinates, not routed")
                result.skipped.append(leg.id)
                continue

            try:
                metrics = self.client.route_pair(origin.lat, origin.lon, destination.lat, destination.lon)
            except RoutingProviderError as e:
                if fail_fast:
                    raise
                logger.error(f"Routing failed for leg {leg.id} of route {route.id}: {e}")
                result.failed.append(leg.id)
                result.errors.append(str(e))
                continue

            leg.distance_meters = metrics.distance_meters
            leg.duration_seconds = metrics.duration_seconds
            leg.geometry = metrics.geometry
            leg.provider = metrics.provider
            leg.calculated_at = datetime.now(timezone.utc)
            leg.needs_routing = False
            result.refreshed.append(leg.id)

        logger.info(
            f"Refreshed legs of route {route.id}: {len(result.refreshed)} routed, "
            f"{len(result.skipped)} skipped, {len(result.failed)} failed"
        )
        return result
