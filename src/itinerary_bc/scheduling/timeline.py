"""Derived views over a route's stops.

Only position_index is stored order. The temporal sequence is always
recomputed from live planned_start values, so the two orderings can never
drift apart in storage.
"""

from datetime import datetime, timedelta, timezone, tzinfo
from typing import Dict, Iterable, List, Optional, Tuple

from src.itinerary_bc.route.domain.exceptions import InvalidScheduleError
from src.itinerary_bc.stop.domain.entities import RouteStop


def positional_sequence(stops: Iterable[RouteStop]) -> List[RouteStop]:
    """Stops sorted by position_index ascending."""
    return sorted(stops, key=lambda s: s.position_index)


def temporal_key(stop: RouteStop, planned_start: Optional[datetime] = None) -> Tuple[datetime, int]:
    """Sort key of the temporal order: instant first, position_index breaks ties."""
    start = planned_start if planned_start is not None else stop.planned_start
    return (to_utc(start), stop.position_index)


def temporal_sequence(stops: Iterable[RouteStop]) -> List[RouteStop]:
    """Scheduled stops sorted by planned_start, ties broken by position_index."""
    return sorted((s for s in stops if s.planned_start is not None), key=temporal_key)


def rank_map(sequence: Iterable[RouteStop]) -> Dict[str, int]:
    """Stop id -> index in the given sequence."""
    return {stop.id: index for index, stop in enumerate(sequence)}


# =============================================================================
# Instant helpers
# =============================================================================

def ensure_aware(value: Optional[datetime], field_name: str = "instant") -> Optional[datetime]:
    if value is not None and value.utcoffset() is None:
        raise InvalidScheduleError(f"{field_name} must carry a UTC offset: {value.isoformat()}")
    return value


def to_utc(value: datetime) -> datetime:
    """Convert an offset-aware instant to UTC."""
    ensure_aware(value)
    return value.astimezone(timezone.utc)


def shift(value: datetime, delta: timedelta, zone: tzinfo) -> datetime:
    """Add delta in UTC, then present the result in zone.

    Adding a timedelta to a zone-aware datetime is wall-clock arithmetic in
    Python, which is wrong across DST changes; going through UTC keeps it
    absolute.
    """
    return (to_utc(value) + delta).astimezone(zone)
