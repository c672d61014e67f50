"""Order conflict detection.

A route has two orderings of the same stops: the positional one (the visit
sequence, authoritative) and the temporal one (scheduled stops sorted by
planned_start). A pair of scheduled stops is an *inversion* when the two
orderings disagree on which of them comes first. Every stop that takes part
in at least one inversion is reported as conflicting.

Pairwise comparison is O(n^2), which is fine at trip scale (tens of stops).
"""

import logging
from typing import Dict, List, Sequence, Set

from src.itinerary_bc.route.domain.entities import Route
from src.itinerary_bc.scheduling.reports import ConflictingStop, RouteOrderConflictReport
from src.itinerary_bc.scheduling.timeline import positional_sequence, rank_map, temporal_sequence
from src.itinerary_bc.stop.domain.entities import RouteStop

logger = logging.getLogger(__name__)


def is_inversion(positional_rank: Dict[str, int], temporal_rank: Dict[str, int], a: str, b: str) -> bool:
    """True when a and b are ordered differently by position and by time."""
    by_position = positional_rank[a] - positional_rank[b]
    by_time = temporal_rank[a] - temporal_rank[b]
    return (by_position < 0 < by_time) or (by_time < 0 < by_position)


def inversion_participants(positional_rank: Dict[str, int], temporal_ids: Sequence[str]) -> Set[str]:
    """Ids of stops involved in at least one inversion."""
    temporal_rank = {stop_id: index for index, stop_id in enumerate(temporal_ids)}
    participants: Set[str] = set()
    for i, a in enumerate(temporal_ids):
        for b in temporal_ids[i + 1:]:
            if is_inversion(positional_rank, temporal_rank, a, b):
                participants.add(a)
                participants.add(b)
    return participants


def detect_conflicts(
    positional: Sequence[RouteStop],
    temporal: Sequence[RouteStop],
) -> RouteOrderConflictReport:
    """Compare the two sequences of a route and report inversions.

    Stops without planned_start never appear in the temporal sequence, so
    they can never be flagged. Equal instants are not inversions: the
    temporal sequence breaks ties by position.
    """
    positional_ids = [stop.id for stop in positional]
    temporal_ids = [stop.id for stop in temporal]

    if len(temporal_ids) < 2:
        return RouteOrderConflictReport(
            has_conflict=False,
            positional_sequence=positional_ids,
            temporal_sequence=temporal_ids,
        )

    positional_rank = rank_map(positional)
    temporal_rank = rank_map(temporal)
    participants = inversion_participants(positional_rank, temporal_ids)

    conflicting: List[ConflictingStop] = [
        ConflictingStop(
            stop_id=stop.id,
            place_name=stop.place_name,
            positional_index=positional_rank[stop.id],
            temporal_index=temporal_rank[stop.id],
            planned_start=stop.planned_start,
        )
        for stop in positional
        if stop.id in participants
    ]

    if conflicting:
        logger.debug(
            f"Order conflict: {len(conflicting)} of {len(temporal_ids)} scheduled stops out of sequence"
        )

    return RouteOrderConflictReport(
        has_conflict=bool(conflicting),
        conflicting_stops=conflicting,
        positional_sequence=positional_ids,
        temporal_sequence=temporal_ids,
    )


def detect_route_conflicts(route: Route) -> RouteOrderConflictReport:
    """Derive both sequences from the route and compare them."""
    return detect_conflicts(positional_sequence(route.stops), temporal_sequence(route.stops))
