"""Full-route schedule recalculation.

The positional sequence is first classified into anchors (stops whose times
are fixed) and free stops. Time arithmetic then walks forward in positional
order: a free stop arrives when the previous stop departs plus the travel
time of the connecting leg, and leaves after its stay. Anchors are never
moved while preserve_locked_days is set.

A start-locked stop whose end is rewritten from its stay in relaxed mode
still counts as an implicit departure, so the default arrival hold for
its successor is the same in both modes.

When forward propagation overruns a locked stop ahead, the free stops keep
their propagated times and a warning is recorded. Nothing is compressed or
clipped to fit; the order conflict shows up on the next conflict check.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, tzinfo
from typing import Dict, List, Optional, Set

from src.itinerary_bc.leg.domain.entities import RouteLeg
from src.itinerary_bc.route.domain.entities import Route
from src.itinerary_bc.scheduling.reports import RecalculationResult, StopScheduleChange
from src.itinerary_bc.scheduling.timeline import ensure_aware, positional_sequence, shift, to_utc
from src.itinerary_bc.stop.domain.entities import RouteStop

logger = logging.getLogger(__name__)


# =============================================================================
# Classification
# =============================================================================

@dataclass
class StopSlot:
    """A stop together with what recalculation may change about it."""
    stop: RouteStop
    locked: bool = False
    # Route-level bounds applied to an unlocked boundary stop
    boundary_start: Optional[datetime] = None
    boundary_end: Optional[datetime] = None

    @property
    def is_anchor(self) -> bool:
        return self.locked or self.boundary_start is not None or self.boundary_end is not None


def classify_stops(route: Route, ordered: List[RouteStop]) -> List[StopSlot]:
    """Partition the positional sequence into anchors and free stops.

    Route start/end instants anchor the first/last stop only when that stop
    carries no lock of its own.
    """
    settings = route.settings
    slots = []
    last = len(ordered) - 1
    for index, stop in enumerate(ordered):
        slot = StopSlot(stop=stop, locked=stop.is_locked)
        if not slot.locked:
            if index == 0 and settings.start_at is not None:
                slot.boundary_start = ensure_aware(settings.start_at, "route start")
            if index == last and settings.end_at is not None:
                slot.boundary_end = ensure_aware(settings.end_at, "route end")
        slots.append(slot)
    return slots


# =============================================================================
# Forward walk
# =============================================================================

@dataclass
class _Departure:
    at: datetime
    implicit: bool  # Derived from start + stay because the stop has no planned_end


def _departure(stop: RouteStop) -> Optional[_Departure]:
    if stop.planned_end is not None:
        return _Departure(at=stop.planned_end, implicit=False)
    if stop.planned_start is not None:
        return _Departure(at=shift(stop.planned_start, stop.stay_duration(), stop.planned_start.tzinfo), implicit=True)
    return None


def _not_before_default_arrival(route: Route, arrival: datetime, zone: tzinfo) -> datetime:
    """Hold an arrival to the route's default arrival time-of-day on its local date."""
    default_time = route.settings.default_arrival_time
    if default_time is None:
        return arrival
    local = arrival.astimezone(zone)
    earliest = datetime.combine(local.date(), default_time, tzinfo=zone)
    return earliest if to_utc(arrival) < to_utc(earliest) else arrival


class ScheduleRecalculator:
    """Regenerates planned_start/planned_end of free stops and of every leg."""

    def __init__(self, route: Route, stops: List[RouteStop], legs: List[RouteLeg], preserve_locked_days: bool = True):
        self.route = route
        self.stops = stops
        self.legs = legs
        self.preserve_locked_days = preserve_locked_days
        self._legs_by_pair: Dict[tuple, RouteLeg] = {leg.pair: leg for leg in legs}
        self._warnings: List[str] = []
        self._anchor_adjusted = False
        # Start-locked stops whose end was rewritten from start + stay in relaxed mode
        self._derived_ends: Set[str] = set()

    def run(self) -> RecalculationResult:
        ordered = positional_sequence(self.stops)
        if not ordered:
            return RecalculationResult()

        originals = {stop.id: (stop.planned_start, stop.planned_end) for stop in ordered}

        previous: Optional[RouteStop] = None
        for slot in classify_stops(self.route, ordered):
            arrival = self._arrival_from(previous, slot.stop)
            if slot.locked:
                self._place_locked(slot.stop, arrival, previous)
            else:
                self._place_free(slot, arrival)
            previous = slot.stop

        self._span_legs()

        changes = [
            StopScheduleChange(
                stop_id=stop.id,
                place_name=stop.place_name,
                old_start=originals[stop.id][0],
                old_end=originals[stop.id][1],
                new_start=stop.planned_start,
                new_end=stop.planned_end,
                was_locked=stop.is_locked,
            )
            for stop in ordered
        ]
        updated = sum(1 for change in changes if change.changed)

        return RecalculationResult(
            updated_stop_count=updated,
            changes=changes,
            preserved_locked_days=not self._anchor_adjusted,
            warnings=list(self._warnings),
        )

    def _arrival_from(self, previous: Optional[RouteStop], stop: RouteStop) -> Optional[datetime]:
        if previous is None:
            return None
        departure = _departure(previous)
        if departure is None:
            return None
        if previous.id in self._derived_ends:
            departure.implicit = True

        leg = self._legs_by_pair.get((previous.id, stop.id))
        travel = leg.travel_time if leg is not None else timedelta(0)
        if leg is None:
            logger.debug(f"No leg between {previous.id} and {stop.id}, assuming zero travel time")

        zone = self.route.effective_timezone(stop)
        arrival = shift(departure.at, travel, zone)
        if departure.implicit:
            arrival = _not_before_default_arrival(self.route, arrival, zone)
        return arrival

    def _place_free(self, slot: StopSlot, arrival: Optional[datetime]) -> None:
        stop = slot.stop
        zone = self.route.effective_timezone(stop)
        stay = stop.stay_duration()

        if slot.boundary_start is not None:
            start = slot.boundary_start
        elif arrival is not None:
            start = arrival
        elif stop.planned_start is not None:
            # No predecessor time to walk from: the stop's own start seeds the run
            start = stop.planned_start
        elif slot.boundary_end is not None:
            start = shift(slot.boundary_end, -stay, zone)
        else:
            return

        if slot.boundary_end is not None:
            end = slot.boundary_end
            if to_utc(start) > to_utc(end):
                self._warn(
                    f"Stop '{stop.place_name or stop.id}' starts at {start.isoformat()}, "
                    f"after the route end {end.isoformat()}"
                )
        else:
            end = shift(start, stay, zone)

        self._assign(stop, start.astimezone(zone), end.astimezone(zone))

    def _place_locked(self, stop: RouteStop, arrival: Optional[datetime], previous: Optional[RouteStop]) -> None:
        if arrival is not None and stop.planned_start is not None and to_utc(arrival) > to_utc(stop.planned_start):
            self._warn(
                f"Inconsistent lock: '{previous.place_name or previous.id}' cannot reach locked stop "
                f"'{stop.place_name or stop.id}' before {stop.planned_start.isoformat()} "
                f"(earliest arrival {arrival.isoformat()})"
            )

        if self.preserve_locked_days or (stop.start_locked and stop.end_locked):
            return

        zone = self.route.effective_timezone(stop)
        stay = stop.stay_duration()
        if stop.start_locked and stop.planned_start is not None:
            new_end = shift(stop.planned_start, stay, zone)
            self._derived_ends.add(stop.id)
            if self._assign(stop, stop.planned_start, new_end):
                self._anchor_adjusted = True
        elif stop.end_locked and stop.planned_end is not None:
            new_start = arrival if arrival is not None else shift(stop.planned_end, -stay, zone)
            if to_utc(new_start) > to_utc(stop.planned_end):
                new_start = stop.planned_end
            if self._assign(stop, new_start.astimezone(zone), stop.planned_end):
                self._anchor_adjusted = True

    def _assign(self, stop: RouteStop, start: Optional[datetime], end: Optional[datetime]) -> bool:
        """Write instants that differ from the stored ones. Returns True on change."""
        changed = False
        if start != stop.planned_start:
            stop.planned_start = start
            changed = True
        if end != stop.planned_end:
            stop.planned_end = end
            changed = True
        return changed

    def _span_legs(self) -> None:
        stops_by_id = {stop.id: stop for stop in self.stops}
        for leg in self.legs:
            origin = stops_by_id.get(leg.from_stop_id)
            destination = stops_by_id.get(leg.to_stop_id)
            if origin is None or destination is None:
                logger.debug(f"Leg {leg.id} references a stop outside the route, skipping")
                continue
            departure = _departure(origin)
            start = departure.at if departure is not None else None
            end = destination.planned_start
            if start != leg.planned_start:
                leg.planned_start = start
            if end != leg.planned_end:
                leg.planned_end = end

    def _warn(self, message: str) -> None:
        logger.warning(f"Route {self.route.id}: {message}")
        self._warnings.append(message)


def recalculate_schedule(
    route: Route,
    stops: List[RouteStop],
    legs: List[RouteLeg],
    preserve_locked_days: bool = True,
) -> RecalculationResult:
    """Recompute planned times of every unlocked stop and every leg, in place.

    The caller is responsible for persisting the mutated stops and legs.
    """
    result = ScheduleRecalculator(route, stops, legs, preserve_locked_days).run()
    logger.info(
        f"Recalculated schedule for route {route.id}: {result.updated_stop_count} stops updated "
        f"(preserve_locked_days={preserve_locked_days}, warnings={len(result.warnings)})"
    )
    return result
