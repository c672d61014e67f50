"""Validation of a proposed time change for a single stop.

Answers "what would happen to the route order if this stop started at
proposed_start?" without touching the route. Moving one stop in time only
changes its relative order with the stops whose temporal key lies between
its old and its new key, so only those stops (plus the moved one) can change
inversion status. That neighbourhood is all that gets re-checked.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Set

from src.itinerary_bc.route.domain.entities import Route
from src.itinerary_bc.route.domain.exceptions import InvalidScheduleError
from src.itinerary_bc.scheduling.conflict_detector import inversion_participants, is_inversion
from src.itinerary_bc.scheduling.reports import ScheduleChangeConflictReport
from src.itinerary_bc.scheduling.timeline import (
    ensure_aware,
    positional_sequence,
    rank_map,
    temporal_key,
    temporal_sequence,
)
from src.itinerary_bc.stop.domain.entities import RouteStop

logger = logging.getLogger(__name__)


def _rank_of_ids(ids: Sequence[str]) -> Dict[str, int]:
    return {sid: index for index, sid in enumerate(ids)}


def _participates(
    stop_id: str,
    positional_rank: Dict[str, int],
    temporal_ids: Sequence[str],
) -> bool:
    """True when stop_id is in at least one inversion of temporal_ids."""
    temporal_rank = _rank_of_ids(temporal_ids)
    if stop_id not in temporal_rank:
        return False
    return any(
        is_inversion(positional_rank, temporal_rank, stop_id, other)
        for other in temporal_ids
        if other != stop_id
    )


def _neighbourhood(
    moved: RouteStop,
    proposed_start: datetime,
    current_temporal: List[RouteStop],
) -> Set[str]:
    """Stops whose relative order with the moved stop flips under the proposal."""
    others = [stop for stop in current_temporal if stop.id != moved.id]
    if moved.planned_start is None:
        # Previously unscheduled: every pair with the moved stop is new
        return {stop.id for stop in others}

    old_key = temporal_key(moved)
    new_key = temporal_key(moved, proposed_start)
    low, high = min(old_key, new_key), max(old_key, new_key)
    return {stop.id for stop in others if low < temporal_key(stop) < high}


def _order_with_stop_moved_to_time_rank(
    positional_ids: List[str],
    hypothetical_ids: List[str],
    stop_id: str,
) -> List[str]:
    """Positional order with stop_id relocated next to its temporal neighbours."""
    order = [sid for sid in positional_ids if sid != stop_id]
    rank = hypothetical_ids.index(stop_id)
    if rank + 1 < len(hypothetical_ids):
        order.insert(order.index(hypothetical_ids[rank + 1]), stop_id)
    else:
        order.insert(order.index(hypothetical_ids[rank - 1]) + 1, stop_id)
    return order


def validate_schedule_change(
    route: Route,
    stop_id: str,
    proposed_start: datetime,
    proposed_end: Optional[datetime] = None,
) -> ScheduleChangeConflictReport:
    """Predict whether giving stop_id a new planned_start creates an order conflict.

    Raises:
        StopNotFoundError: stop_id is not part of the route.
        InvalidScheduleError: instants are naive or end precedes start.
    """
    stop = route.get_stop(stop_id)

    ensure_aware(proposed_start, "proposed_start")
    ensure_aware(proposed_end, "proposed_end")
    if proposed_end is not None and proposed_end < proposed_start:
        raise InvalidScheduleError(
            f"proposed_end {proposed_end.isoformat()} is before proposed_start {proposed_start.isoformat()}"
        )

    positional = positional_sequence(route.stops)
    positional_ids = [s.id for s in positional]
    positional_rank = rank_map(positional)

    current_temporal = temporal_sequence(route.stops)
    current_ids = [s.id for s in current_temporal]

    hypothetical = sorted(
        [s for s in current_temporal if s.id != stop.id] + [stop],
        key=lambda s: temporal_key(s, proposed_start if s.id == stop.id else None),
    )
    hypothetical_ids = [s.id for s in hypothetical]
    proposed_temporal_index = hypothetical_ids.index(stop.id)

    candidates = _neighbourhood(stop, proposed_start, current_temporal)
    candidates.add(stop.id)
    affected = {
        sid for sid in candidates
        if _participates(sid, positional_rank, current_ids)
        != _participates(sid, positional_rank, hypothetical_ids)
    }

    would_create_conflict = _participates(stop.id, positional_rank, hypothetical_ids)

    suggested_reorder = False
    message = None
    if would_create_conflict:
        reordered = _order_with_stop_moved_to_time_rank(positional_ids, hypothetical_ids, stop.id)
        suggested_reorder = not inversion_participants(_rank_of_ids(reordered), hypothetical_ids)
        label = stop.place_name or stop.id
        if suggested_reorder:
            message = (
                f"The new time puts '{label}' at position {proposed_temporal_index + 1} of the timeline, "
                f"but it is stop {stop.position_index + 1} of the route. "
                f"Moving it in the route order resolves the conflict."
            )
        else:
            message = (
                f"The new time for '{label}' conflicts with the route order "
                f"and reordering this stop alone would not resolve it."
            )
        logger.debug(
            f"Schedule change for stop {stop.id} would create a conflict "
            f"(suggested_reorder={suggested_reorder}, affected={len(affected)})"
        )

    return ScheduleChangeConflictReport(
        would_create_conflict=would_create_conflict,
        stop_id=stop.id,
        place_name=stop.place_name,
        current_positional_index=stop.position_index,
        proposed_temporal_index=proposed_temporal_index,
        suggested_reorder=suggested_reorder,
        affected_stops=affected,
        message=message,
    )
