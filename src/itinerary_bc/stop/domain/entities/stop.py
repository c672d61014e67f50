from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import IntEnum
from typing import Optional


class StopKind(IntEnum):
    """Kind of stay. Only used to pick duration defaults."""
    OVERNIGHT = 0
    DAY_STOP = 1
    WAYPOINT = 2


# Stay length used when a stop carries neither an explicit stay nor a committed span
DEFAULT_STAY_BY_KIND = {
    StopKind.OVERNIGHT: timedelta(days=1),
    StopKind.DAY_STOP: timedelta(minutes=120),
    StopKind.WAYPOINT: timedelta(0),
}


@dataclass
class RouteStop:
    """A stay at a place within a route.

    position_index is the authoritative visit order (dense, 0..n-1 per route).
    planned_start / planned_end are offset-aware instants.
    """

    id: str
    route_id: str
    place_id: str
    position_index: int
    place_name: str = ""
    lat: Optional[float] = None
    lon: Optional[float] = None
    kind: StopKind = StopKind.OVERNIGHT
    timezone: Optional[str] = None  # Overrides the route time zone
    planned_start: Optional[datetime] = None
    planned_end: Optional[datetime] = None
    stay_nights: Optional[int] = None
    stay_duration_minutes: Optional[int] = None
    start_locked: bool = False
    end_locked: bool = False

    @property
    def is_locked(self) -> bool:
        return self.start_locked or self.end_locked

    @property
    def is_scheduled(self) -> bool:
        return self.planned_start is not None

    @property
    def has_coordinates(self) -> bool:
        return self.lat is not None and self.lon is not None

    def stay_duration(self) -> timedelta:
        """Length of the stay.

        stay_duration_minutes wins over stay_nights when both are set. Without
        either, the committed span is kept, then the kind default applies.
        """
        if self.stay_duration_minutes is not None:
            return timedelta(minutes=self.stay_duration_minutes)
        if self.stay_nights is not None:
            return timedelta(hours=24 * self.stay_nights)
        if self.planned_start is not None and self.planned_end is not None:
            span = self.planned_end - self.planned_start
            if span >= timedelta(0):
                return span
        return DEFAULT_STAY_BY_KIND[self.kind]
