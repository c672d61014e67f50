"""Positional edits of a route: reorder, insert, remove.

Every edit ends with the same two steps: position_index is renumbered to
0..n-1 in the new order and the legs are regenerated so each one joins two
positionally consecutive stops. A leg whose (from, to) pair survives the edit
keeps its id, metrics and geometry; new adjacencies get a placeholder leg
flagged needs_routing for the routing provider to fill.
"""

import logging
import uuid
from typing import Dict, List, Optional, Sequence, Union

from src.itinerary_bc.leg.domain.entities import DEFAULT_PROVIDER, RouteLeg
from src.itinerary_bc.route.domain.entities import Route
from src.itinerary_bc.route.domain.exceptions import InvalidOrderError
from src.itinerary_bc.scheduling.recalculation import recalculate_schedule
from src.itinerary_bc.scheduling.reports import RecalculationResult
from src.itinerary_bc.scheduling.timeline import positional_sequence, temporal_sequence
from src.itinerary_bc.stop.domain.entities import RouteStop

logger = logging.getLogger(__name__)


# =============================================================================
# Order resolution
# =============================================================================

def resolve_order(route: Route, new_order: Sequence[str]) -> List[RouteStop]:
    """Map identifiers to the route's stops.

    Identifiers may be stop ids or place ids; a stop id wins when both match.
    A place visited twice resolves to its visits in current positional order.

    Raises:
        InvalidOrderError: new_order is not a permutation of the route's stops.
    """
    stops_by_id: Dict[str, RouteStop] = {stop.id: stop for stop in route.stops}
    visits_by_place: Dict[str, List[RouteStop]] = {}
    for stop in positional_sequence(route.stops):
        visits_by_place.setdefault(stop.place_id, []).append(stop)

    resolved: List[RouteStop] = []
    used = set()
    duplicated: List[str] = []
    unknown: List[str] = []

    for identifier in new_order:
        stop = stops_by_id.get(identifier)
        if stop is None:
            visits = visits_by_place.get(identifier)
            if not visits:
                unknown.append(identifier)
                continue
            stop = next((v for v in visits if v.id not in used), visits[0])
        if stop.id in used:
            duplicated.append(identifier)
            continue
        used.add(stop.id)
        resolved.append(stop)

    missing = [stop.id for stop in positional_sequence(route.stops) if stop.id not in used]
    if missing or duplicated or unknown:
        raise InvalidOrderError(missing=missing, duplicated=duplicated, unknown=unknown)
    return resolved


# =============================================================================
# Renumbering and legs
# =============================================================================

def _renumber(route: Route, ordered: List[RouteStop]) -> None:
    for index, stop in enumerate(ordered):
        stop.position_index = index
    route.stops = list(ordered)


def regenerate_legs(route: Route) -> List[RouteLeg]:
    """Rebuild route.legs from the positional sequence.

    Returns the legs that need routing.
    """
    existing = {leg.pair: leg for leg in route.legs}
    ordered = positional_sequence(route.stops)

    legs: List[RouteLeg] = []
    pending: List[RouteLeg] = []
    for index, (origin, destination) in enumerate(zip(ordered, ordered[1:])):
        leg = existing.get((origin.id, destination.id))
        if leg is not None:
            leg.position_index = index
        else:
            leg = RouteLeg(
                id=str(uuid.uuid4()),
                route_id=route.id,
                from_stop_id=origin.id,
                to_stop_id=destination.id,
                position_index=index,
                distance_meters=0,
                duration_seconds=0,
                provider=DEFAULT_PROVIDER,
                needs_routing=True,
            )
            pending.append(leg)
        legs.append(leg)

    dropped = len(existing) - (len(legs) - len(pending))
    route.legs = legs
    logger.debug(
        f"Regenerated legs for route {route.id}: {len(legs)} total, "
        f"{len(pending)} new, {dropped} dropped"
    )
    return pending


def _finish(
    route: Route,
    recalculate_after: bool,
    preserve_locked_days: bool,
) -> Union[RecalculationResult, Route]:
    if recalculate_after:
        return recalculate_schedule(route, route.stops, route.legs, preserve_locked_days)
    return route


# =============================================================================
# Edits
# =============================================================================

def reorder_stops(
    route: Route,
    new_order: Sequence[str],
    recalculate_after: bool = True,
    preserve_locked_days: bool = True,
) -> Union[RecalculationResult, Route]:
    """Apply a user-chosen visit order.

    Returns the recalculation result when recalculate_after is set,
    otherwise the updated route.
    """
    ordered = resolve_order(route, new_order)
    _renumber(route, ordered)
    regenerate_legs(route)
    logger.info(f"Reordered route {route.id}: {[stop.id for stop in ordered]}")
    return _finish(route, recalculate_after, preserve_locked_days)


def insert_stop(route: Route, stop: RouteStop, position: Optional[int] = None) -> Route:
    """Insert a stop at position (appended when None or past the end)."""
    ordered = positional_sequence(route.stops)
    if position is None or position > len(ordered):
        position = len(ordered)
    position = max(position, 0)

    stop.route_id = route.id
    ordered.insert(position, stop)
    _renumber(route, ordered)
    regenerate_legs(route)
    logger.info(f"Inserted stop {stop.id} into route {route.id} at position {position}")
    return route


def remove_stop(route: Route, stop_id: str) -> RouteStop:
    """Remove a stop and close the gap it leaves.

    Raises:
        StopNotFoundError: stop_id is not part of the route.
    """
    removed = route.get_stop(stop_id)
    ordered = [stop for stop in positional_sequence(route.stops) if stop.id != stop_id]
    _renumber(route, ordered)
    regenerate_legs(route)
    logger.info(f"Removed stop {stop_id} from route {route.id}")
    return removed


def apply_time_based_order(
    route: Route,
    recalculate_after: bool = False,
    preserve_locked_days: bool = True,
) -> Union[RecalculationResult, Route]:
    """Resolve order conflicts by moving scheduled stops into temporal order.

    Unscheduled stops keep their positional slots; the scheduled ones fill
    the remaining slots in planned_start order.
    """
    scheduled = temporal_sequence(route.stops)
    if len(scheduled) < 2:
        logger.warning(
            f"Route {route.id} has {len(scheduled)} scheduled stops, nothing to order by time"
        )
        return _finish(route, recalculate_after, preserve_locked_days)

    by_time = iter(scheduled)
    ordered = [
        next(by_time) if stop.is_scheduled else stop
        for stop in positional_sequence(route.stops)
    ]
    return reorder_stops(
        route,
        [stop.id for stop in ordered],
        recalculate_after=recalculate_after,
        preserve_locked_days=preserve_locked_days,
    )
