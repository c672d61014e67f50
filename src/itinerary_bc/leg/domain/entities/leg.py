from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional


DEFAULT_PROVIDER = "OSRM"


@dataclass
class RouteLeg:
    """Travel segment between two positionally consecutive stops.

    position_index always equals the index of the "from" stop, so stops and
    legs interleave: stop0, leg0, stop1, leg1, ...
    """

    id: str
    route_id: str
    from_stop_id: str
    to_stop_id: str
    position_index: int
    distance_meters: int = 0
    duration_seconds: int = 0
    geometry: Optional[List[List[float]]] = None  # [[lon, lat], ...]
    provider: str = DEFAULT_PROVIDER
    calculated_at: Optional[datetime] = None
    planned_start: Optional[datetime] = None
    planned_end: Optional[datetime] = None
    # New adjacency: distance/duration/geometry still to be filled by the routing provider
    needs_routing: bool = False

    @property
    def travel_time(self) -> timedelta:
        return timedelta(seconds=self.duration_seconds or 0)

    @property
    def pair(self) -> tuple:
        return (self.from_stop_id, self.to_stop_id)


@dataclass
class LegMetrics:
    """Distance/duration/geometry returned by a routing provider for one leg."""

    distance_meters: int
    duration_seconds: int
    geometry: List[List[float]] = field(default_factory=list)
    provider: str = DEFAULT_PROVIDER
