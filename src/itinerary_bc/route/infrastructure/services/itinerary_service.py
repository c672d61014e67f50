"""Application service around the scheduling engine.

Every mutation is one read-compute-write cycle: load the route aggregate,
run the engine in memory, save conditioned on the version that was read.
A version conflict rolls back and repeats the whole cycle, up to
MAX_SAVE_RETRIES attempts.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable, List, Optional, Sequence, Tuple, TypeVar

from sqlalchemy.orm import Session

from core.config import settings
from src.itinerary_bc.route.domain.entities import Route, RouteScheduleSettings
from src.itinerary_bc.route.domain.exceptions import InvalidScheduleError, ScheduleConflictError, StaleRouteError
from src.itinerary_bc.route.infrastructure.repositories.route_repository import RouteRepository
from src.itinerary_bc.routing.infrastructure.services.leg_routing_service import LegRefreshResult, LegRoutingService
from src.itinerary_bc.routing.infrastructure.services.osrm_client import OsrmClient
from src.itinerary_bc.scheduling import (
    RecalculationResult,
    RouteOrderConflictReport,
    ScheduleChangeConflictReport,
    apply_time_based_order,
    detect_route_conflicts,
    insert_stop,
    recalculate_schedule,
    regenerate_legs,
    remove_stop,
    reorder_stops,
    seed_default_schedule,
    validate_schedule_change,
)
from src.itinerary_bc.scheduling.timeline import ensure_aware, to_utc
from src.itinerary_bc.stop.domain.entities import RouteStop

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class ConflictResolution:
    before: RouteOrderConflictReport
    after: RouteOrderConflictReport
    recalculation: Optional[RecalculationResult] = None


class ItineraryService:
    """Use cases of the itinerary API, each a single consistent write."""

    def __init__(
        self,
        db: Session,
        leg_routing: Optional[LegRoutingService] = None,
        max_retries: Optional[int] = None,
    ):
        self.db = db
        self.repository = RouteRepository(db)
        self.leg_routing = leg_routing
        self.max_retries = max(1, max_retries if max_retries is not None else settings.MAX_SAVE_RETRIES)

    def _mutate(self, route_id: str, operation: Callable[[Route], T]) -> Tuple[Route, T]:
        """Run operation on a fresh copy of the route and save it, retrying on version conflicts."""
        last_error: Optional[StaleRouteError] = None
        for attempt in range(1, self.max_retries + 1):
            route = self.repository.get(route_id)
            outcome = operation(route)
            try:
                self.repository.save(route)
                self.db.commit()
                return route, outcome
            except StaleRouteError as e:
                self.db.rollback()
                last_error = e
                logger.warning(
                    f"Route {route_id} changed concurrently, retrying "
                    f"(attempt {attempt}/{self.max_retries})"
                )
        logger.error(f"Giving up on route {route_id} after {self.max_retries} conflicting writes")
        raise last_error

    # =========================================================================
    # Routes
    # =========================================================================

    def create_route(self, route: Route) -> Route:
        """Persist a new route with its initial stops in the given order."""
        route.id = route.id or str(uuid.uuid4())
        for index, stop in enumerate(route.stops):
            stop.id = stop.id or str(uuid.uuid4())
            stop.route_id = route.id
            stop.position_index = index
        route.legs = []
        regenerate_legs(route)
        created = self.repository.create(route)
        self.db.commit()
        return created

    def get_route(self, route_id: str) -> Route:
        return self.repository.get(route_id)

    def update_schedule_settings(
        self,
        route_id: str,
        new_settings: RouteScheduleSettings,
        recalculate_after: bool = False,
    ) -> Tuple[Route, Optional[RecalculationResult]]:
        ensure_aware(new_settings.start_at, "start_at")
        ensure_aware(new_settings.end_at, "end_at")
        if new_settings.start_at and new_settings.end_at and to_utc(new_settings.end_at) < to_utc(new_settings.start_at):
            raise InvalidScheduleError("Route end_at is before start_at")

        def operation(route: Route) -> Optional[RecalculationResult]:
            route.settings = new_settings
            if recalculate_after:
                return recalculate_schedule(route, route.stops, route.legs)
            return None

        return self._mutate(route_id, operation)

    # =========================================================================
    # Stops
    # =========================================================================

    def add_stop(
        self,
        route_id: str,
        stop: RouteStop,
        position: Optional[int] = None,
        recalculate_after: bool = False,
    ) -> Tuple[Route, Optional[RecalculationResult]]:
        ensure_aware(stop.planned_start, "planned_start")
        ensure_aware(stop.planned_end, "planned_end")
        stop.id = stop.id or str(uuid.uuid4())

        def operation(route: Route) -> Optional[RecalculationResult]:
            insert_stop(route, stop, position)
            if recalculate_after:
                return recalculate_schedule(route, route.stops, route.legs)
            return None

        return self._mutate(route_id, operation)

    def remove_stop(
        self,
        route_id: str,
        stop_id: str,
        recalculate_after: bool = False,
    ) -> Tuple[Route, Optional[RecalculationResult]]:
        def operation(route: Route) -> Optional[RecalculationResult]:
            remove_stop(route, stop_id)
            if recalculate_after:
                return recalculate_schedule(route, route.stops, route.legs)
            return None

        return self._mutate(route_id, operation)

    def update_stop_schedule(
        self,
        route_id: str,
        stop_id: str,
        planned_start: Optional[datetime] = None,
        planned_end: Optional[datetime] = None,
        start_locked: Optional[bool] = None,
        end_locked: Optional[bool] = None,
        stay_nights: Optional[int] = None,
        stay_duration_minutes: Optional[int] = None,
        allow_conflict: bool = False,
        clear_times: bool = False,
    ) -> Tuple[Route, Optional[ScheduleChangeConflictReport]]:
        """Apply a manual edit to one stop after validating it against the route order.

        Every field is a patch: None keeps the stored value. Planned times are
        only removed through clear_times, and a stop that stays locked cannot
        lose them. Whenever the effective start or end changes, the change
        validator runs first.

        Raises:
            ScheduleConflictError: the edit would create an order conflict
                and allow_conflict is not set.
            InvalidScheduleError: the edit leaves an end without a start,
                combines clear_times with new times, or clears a locked stop.
        """
        if clear_times and (planned_start is not None or planned_end is not None):
            raise InvalidScheduleError("clear_times cannot be combined with new planned times")

        def operation(route: Route) -> Optional[ScheduleChangeConflictReport]:
            stop = route.get_stop(stop_id)
            locked_after = (
                stop.start_locked if start_locked is None else start_locked,
                stop.end_locked if end_locked is None else end_locked,
            )

            report = None
            if clear_times:
                if any(locked_after):
                    raise InvalidScheduleError(f"Stop {stop_id} is locked; unlock it before clearing its times")
                new_start, new_end = None, None
            else:
                new_start = planned_start if planned_start is not None else stop.planned_start
                new_end = planned_end if planned_end is not None else stop.planned_end
                if new_start is None and new_end is not None:
                    raise InvalidScheduleError("planned_end requires planned_start")
                if new_start is not None and (new_start, new_end) != (stop.planned_start, stop.planned_end):
                    report = validate_schedule_change(route, stop_id, new_start, new_end)
                    if report.would_create_conflict and not allow_conflict:
                        raise ScheduleConflictError(report)

            if (locked_after[0] and new_start is None) or (locked_after[1] and new_end is None):
                raise InvalidScheduleError(f"Stop {stop_id} cannot be locked without a planned time")

            stop.planned_start = new_start
            stop.planned_end = new_end
            stop.start_locked, stop.end_locked = locked_after
            if stay_nights is not None:
                stop.stay_nights = stay_nights
            if stay_duration_minutes is not None:
                stop.stay_duration_minutes = stay_duration_minutes
            return report

        return self._mutate(route_id, operation)

    def reorder(
        self,
        route_id: str,
        new_order: Sequence[str],
        recalculate_after: bool = True,
        preserve_locked_days: bool = True,
    ) -> Tuple[Route, Optional[RecalculationResult]]:
        def operation(route: Route) -> Optional[RecalculationResult]:
            outcome = reorder_stops(route, new_order, recalculate_after, preserve_locked_days)
            return outcome if isinstance(outcome, RecalculationResult) else None

        return self._mutate(route_id, operation)

    # =========================================================================
    # Conflicts
    # =========================================================================

    def get_conflicts(self, route_id: str) -> RouteOrderConflictReport:
        return detect_route_conflicts(self.repository.get(route_id))

    def check_schedule_change(
        self,
        route_id: str,
        stop_id: str,
        proposed_start: datetime,
        proposed_end: Optional[datetime] = None,
    ) -> ScheduleChangeConflictReport:
        return validate_schedule_change(self.repository.get(route_id), stop_id, proposed_start, proposed_end)

    def resolve_conflicts(
        self,
        route_id: str,
        recalculate_after: bool = False,
        preserve_locked_days: bool = True,
    ) -> Tuple[Route, ConflictResolution]:
        """Reorder scheduled stops into time order."""
        def operation(route: Route) -> ConflictResolution:
            before = detect_route_conflicts(route)
            outcome = apply_time_based_order(route, recalculate_after, preserve_locked_days)
            return ConflictResolution(
                before=before,
                after=detect_route_conflicts(route),
                recalculation=outcome if isinstance(outcome, RecalculationResult) else None,
            )

        return self._mutate(route_id, operation)

    # =========================================================================
    # Schedule
    # =========================================================================

    def recalculate(self, route_id: str, preserve_locked_days: bool = True) -> Tuple[Route, RecalculationResult]:
        return self._mutate(
            route_id,
            lambda route: recalculate_schedule(route, route.stops, route.legs, preserve_locked_days),
        )

    def initialize_schedule(
        self,
        route_id: str,
        today: Optional[date] = None,
        recalculate_after: bool = False,
    ) -> Tuple[Route, List[str]]:
        """Seed default times for unscheduled stops."""
        def operation(route: Route) -> List[str]:
            seeded = seed_default_schedule(route, today or datetime.now(route.zone).date())
            if recalculate_after:
                recalculate_schedule(route, route.stops, route.legs)
            return seeded

        return self._mutate(route_id, operation)

    # =========================================================================
    # Legs
    # =========================================================================

    def refresh_legs(
        self,
        route_id: str,
        force: bool = False,
        fail_fast: bool = True,
        recalculate_after: bool = True,
    ) -> Tuple[Route, LegRefreshResult]:
        """Fill pending legs from the routing provider and save them.

        Travel times feed the schedule, so a refresh that routed anything
        is followed by a recalculation unless recalculate_after is off.
        Without an injected LegRoutingService, an OsrmClient is opened for
        this refresh and closed when it returns.
        """
        def run(leg_routing: LegRoutingService) -> Tuple[Route, LegRefreshResult]:
            def operation(route: Route) -> LegRefreshResult:
                result = leg_routing.refresh_legs(route, force=force, fail_fast=fail_fast)
                if recalculate_after and result.refreshed:
                    recalculate_schedule(route, route.stops, route.legs)
                return result

            return self._mutate(route_id, operation)

        if self.leg_routing is not None:
            return run(self.leg_routing)
        with OsrmClient() as client:
            return run(LegRoutingService(client))

    def list_routes_with_pending_legs(self) -> List[str]:
        return self.repository.list_route_ids_with_pending_legs()
