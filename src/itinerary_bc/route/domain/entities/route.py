from dataclasses import dataclass, field
from datetime import datetime, time
from typing import List, Optional
from zoneinfo import ZoneInfo

from src.itinerary_bc.leg.domain.entities import RouteLeg
from src.itinerary_bc.route.domain.exceptions import StopNotFoundError
from src.itinerary_bc.stop.domain.entities import RouteStop


DEFAULT_TIMEZONE = "Europe/Berlin"


@dataclass
class RouteScheduleSettings:
    """Schedule attributes owned by a route."""

    timezone: str = DEFAULT_TIMEZONE
    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None
    default_arrival_time: Optional[time] = None  # Time of day used to seed new stops
    default_departure_time: Optional[time] = None


@dataclass
class Route:
    """Route aggregate: schedule settings plus its stops and legs.

    version is the optimistic-concurrency stamp read together with the
    stops and legs; saving is conditioned on it being unchanged.
    """

    id: str
    name: str = ""
    description: Optional[str] = None
    settings: RouteScheduleSettings = field(default_factory=RouteScheduleSettings)
    stops: List[RouteStop] = field(default_factory=list)
    legs: List[RouteLeg] = field(default_factory=list)
    version: int = 1
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def get_stop(self, stop_id: str) -> RouteStop:
        for stop in self.stops:
            if stop.id == stop_id:
                return stop
        raise StopNotFoundError(stop_id, self.id)

    def find_leg(self, from_stop_id: str, to_stop_id: str) -> Optional[RouteLeg]:
        for leg in self.legs:
            if leg.from_stop_id == from_stop_id and leg.to_stop_id == to_stop_id:
                return leg
        return None

    @property
    def zone(self) -> ZoneInfo:
        return ZoneInfo(self.settings.timezone or DEFAULT_TIMEZONE)

    def effective_timezone(self, stop: RouteStop) -> ZoneInfo:
        """Stop override if set, otherwise the route zone."""
        return ZoneInfo(stop.timezone) if stop.timezone else self.zone

    @property
    def pending_legs(self) -> List[RouteLeg]:
        return [leg for leg in self.legs if leg.needs_routing]

    def has_contiguous_positions(self) -> bool:
        """True when position indexes form the permutation 0..n-1."""
        return sorted(s.position_index for s in self.stops) == list(range(len(self.stops)))
