"""Itinerary API endpoints: routes, stops, conflicts, schedule and legs.

Domain errors (not found, invalid order/schedule, stale writes, routing
provider failures) propagate to the exception handlers registered in app.py.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from core.config import settings
from core.database import get_db
from core.rate_limiter import get_route_identifier, limiter, RateLimits
from adapters.http.api.itinerary.schemas import (
    AddStopRequest,
    ConflictResolutionResponse,
    InitializeScheduleRequest,
    InitializeScheduleResponse,
    LegRefreshRequest,
    LegRefreshResponse,
    LegResponse,
    RecalculateRequest,
    RecalculationResultResponse,
    ReorderRequest,
    ResolveConflictsRequest,
    RouteCreateRequest,
    RouteMutationResponse,
    RouteOrderConflictResponse,
    RouteResponse,
    RouteScheduleSettingsSchema,
    ScheduleChangeCheckRequest,
    ScheduleChangeConflictResponse,
    StopCreateRequest,
    StopResponse,
    StopScheduleUpdateRequest,
    StopScheduleUpdateResponse,
    UpdateScheduleSettingsRequest,
)
from src.itinerary_bc.route.domain.entities import Route, RouteScheduleSettings
from src.itinerary_bc.route.infrastructure.services.itinerary_service import ItineraryService
from src.itinerary_bc.scheduling import RecalculationResult, detect_route_conflicts
from src.itinerary_bc.stop.domain.entities import RouteStop, StopKind

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/itinerary", tags=["itinerary"])


def get_itinerary_service(db: Session = Depends(get_db)) -> ItineraryService:
    return ItineraryService(db)


# =============================================================================
# Mapping helpers
# =============================================================================

def _route_response(route: Route) -> RouteResponse:
    return RouteResponse(
        id=route.id,
        name=route.name,
        description=route.description,
        version=route.version,
        settings=RouteScheduleSettingsSchema.model_validate(route.settings),
        stops=[StopResponse.model_validate(stop) for stop in sorted(route.stops, key=lambda s: s.position_index)],
        legs=[LegResponse.model_validate(leg) for leg in sorted(route.legs, key=lambda l: l.position_index)],
        conflicts=RouteOrderConflictResponse.model_validate(detect_route_conflicts(route)),
        created_at=route.created_at,
        updated_at=route.updated_at,
    )


def _recalculation_response(result: Optional[RecalculationResult]) -> Optional[RecalculationResultResponse]:
    if result is None:
        return None
    return RecalculationResultResponse.model_validate(result)


def _stop_from_request(body: StopCreateRequest) -> RouteStop:
    return RouteStop(
        id="",
        route_id="",
        place_id=body.place_id,
        position_index=0,
        place_name=body.place_name,
        lat=body.lat,
        lon=body.lon,
        kind=StopKind(body.kind),
        timezone=body.timezone,
        planned_start=body.planned_start,
        planned_end=body.planned_end,
        stay_nights=body.stay_nights,
        stay_duration_minutes=body.stay_duration_minutes,
        start_locked=body.start_locked,
        end_locked=body.end_locked,
    )


def _settings_from_request(body: RouteScheduleSettingsSchema) -> RouteScheduleSettings:
    return RouteScheduleSettings(
        timezone=body.timezone or settings.DEFAULT_TIMEZONE,
        start_at=body.start_at,
        end_at=body.end_at,
        default_arrival_time=body.default_arrival_time,
        default_departure_time=body.default_departure_time,
    )


# =============================================================================
# Routes
# =============================================================================

@router.post("/routes", response_model=RouteResponse, status_code=201)
@limiter.limit(RateLimits.ROUTES)
def create_route(
    request: Request,
    body: RouteCreateRequest,
    service: ItineraryService = Depends(get_itinerary_service),
):
    """Create a route with its initial stops in visit order.

    Legs between consecutive stops are created empty and flagged for
    routing; call the leg refresh endpoint to fill them.
    """
    route = Route(
        id="",
        name=body.name,
        description=body.description,
        settings=_settings_from_request(body.settings),
        stops=[_stop_from_request(stop) for stop in body.stops],
    )
    return _route_response(service.create_route(route))


@router.get("/routes/{route_id}", response_model=RouteResponse)
@limiter.limit(RateLimits.ROUTES)
def get_route(
    request: Request,
    route_id: str,
    service: ItineraryService = Depends(get_itinerary_service),
):
    """Get a route with stops, legs and its current order conflicts."""
    return _route_response(service.get_route(route_id))


@router.put("/routes/{route_id}/schedule", response_model=RouteMutationResponse)
@limiter.limit(RateLimits.ROUTES)
def update_route_schedule(
    request: Request,
    route_id: str,
    body: UpdateScheduleSettingsRequest,
    service: ItineraryService = Depends(get_itinerary_service),
):
    """Replace the route schedule settings (time zone, trip bounds, default times)."""
    route, result = service.update_schedule_settings(
        route_id,
        _settings_from_request(body),
        recalculate_after=body.recalculate_after,
    )
    return RouteMutationResponse(route=_route_response(route), recalculation=_recalculation_response(result))


# =============================================================================
# Stops
# =============================================================================

@router.post("/routes/{route_id}/stops", response_model=RouteMutationResponse, status_code=201)
@limiter.limit(RateLimits.STOPS)
def add_stop(
    request: Request,
    route_id: str,
    body: AddStopRequest,
    service: ItineraryService = Depends(get_itinerary_service),
):
    """Insert a stop (appended when no position is given)."""
    route, result = service.add_stop(
        route_id,
        _stop_from_request(body),
        position=body.position,
        recalculate_after=body.recalculate_after,
    )
    return RouteMutationResponse(route=_route_response(route), recalculation=_recalculation_response(result))


@router.delete("/routes/{route_id}/stops/{stop_id}", response_model=RouteMutationResponse)
@limiter.limit(RateLimits.STOPS)
def delete_stop(
    request: Request,
    route_id: str,
    stop_id: str,
    recalculate_after: bool = False,
    service: ItineraryService = Depends(get_itinerary_service),
):
    """Remove a stop; the following stops move up one position."""
    route, result = service.remove_stop(route_id, stop_id, recalculate_after=recalculate_after)
    return RouteMutationResponse(route=_route_response(route), recalculation=_recalculation_response(result))


@router.put("/routes/{route_id}/stops/reorder", response_model=RouteMutationResponse)
@limiter.limit(RateLimits.REORDER, key_func=get_route_identifier)
def reorder_stops(
    request: Request,
    route_id: str,
    body: ReorderRequest,
    service: ItineraryService = Depends(get_itinerary_service),
):
    """Apply a new visit order (drag and drop), optionally recalculating the schedule."""
    route, result = service.reorder(
        route_id,
        body.new_place_order,
        recalculate_after=body.recalculate_schedule,
        preserve_locked_days=body.preserve_locked_days,
    )
    return RouteMutationResponse(route=_route_response(route), recalculation=_recalculation_response(result))


@router.put("/routes/{route_id}/stops/{stop_id}/schedule", response_model=StopScheduleUpdateResponse)
@limiter.limit(RateLimits.STOPS)
def update_stop_schedule(
    request: Request,
    route_id: str,
    stop_id: str,
    body: StopScheduleUpdateRequest,
    service: ItineraryService = Depends(get_itinerary_service),
):
    """Patch a stop's planned times, locks and stay.

    Omitted fields keep their stored value. A change of the start or end
    is validated against the route order first; it is rejected with 409
    and the change report when it would create a conflict, unless
    allow_conflict is set.
    """
    route, report = service.update_stop_schedule(
        route_id,
        stop_id,
        planned_start=body.planned_start,
        planned_end=body.planned_end,
        start_locked=body.start_locked,
        end_locked=body.end_locked,
        stay_nights=body.stay_nights,
        stay_duration_minutes=body.stay_duration_minutes,
        allow_conflict=body.allow_conflict,
        clear_times=body.clear_times,
    )
    return StopScheduleUpdateResponse(
        route=_route_response(route),
        change_report=ScheduleChangeConflictResponse.model_validate(report) if report else None,
    )


# =============================================================================
# Conflicts
# =============================================================================

@router.get("/routes/{route_id}/conflicts", response_model=RouteOrderConflictResponse)
@limiter.limit(RateLimits.CONFLICTS)
def get_conflicts(
    request: Request,
    route_id: str,
    service: ItineraryService = Depends(get_itinerary_service),
):
    """Stops whose visit order disagrees with their planned times."""
    return RouteOrderConflictResponse.model_validate(service.get_conflicts(route_id))


@router.post("/routes/{route_id}/conflicts/check", response_model=ScheduleChangeConflictResponse)
@limiter.limit(RateLimits.CONFLICTS)
def check_schedule_change(
    request: Request,
    route_id: str,
    body: ScheduleChangeCheckRequest,
    service: ItineraryService = Depends(get_itinerary_service),
):
    """Predict the effect of a time change without applying it."""
    report = service.check_schedule_change(route_id, body.stop_id, body.proposed_start, body.proposed_end)
    return ScheduleChangeConflictResponse.model_validate(report)


@router.post("/routes/{route_id}/conflicts/resolve", response_model=ConflictResolutionResponse)
@limiter.limit(RateLimits.RESOLVE_CONFLICTS, key_func=get_route_identifier)
def resolve_conflicts(
    request: Request,
    route_id: str,
    body: Optional[ResolveConflictsRequest] = None,
    service: ItineraryService = Depends(get_itinerary_service),
):
    """Reorder the scheduled stops into time order."""
    body = body or ResolveConflictsRequest()
    route, resolution = service.resolve_conflicts(
        route_id,
        recalculate_after=body.recalculate_after,
        preserve_locked_days=body.preserve_locked_days,
    )
    return ConflictResolutionResponse(
        route=_route_response(route),
        before=RouteOrderConflictResponse.model_validate(resolution.before),
        after=RouteOrderConflictResponse.model_validate(resolution.after),
        recalculation=_recalculation_response(resolution.recalculation),
    )


# =============================================================================
# Schedule
# =============================================================================

@router.post("/routes/{route_id}/schedule/recalculate", response_model=RouteMutationResponse)
@limiter.limit(RateLimits.RECALCULATE, key_func=get_route_identifier)
def recalculate_schedule(
    request: Request,
    route_id: str,
    body: Optional[RecalculateRequest] = None,
    service: ItineraryService = Depends(get_itinerary_service),
):
    """Recompute the planned times of every unlocked stop and every leg."""
    body = body or RecalculateRequest()
    route, result = service.recalculate(route_id, preserve_locked_days=body.preserve_locked_days)
    return RouteMutationResponse(route=_route_response(route), recalculation=_recalculation_response(result))


@router.post("/routes/{route_id}/schedule/initialize", response_model=InitializeScheduleResponse)
@limiter.limit(RateLimits.RECALCULATE, key_func=get_route_identifier)
def initialize_schedule(
    request: Request,
    route_id: str,
    body: Optional[InitializeScheduleRequest] = None,
    service: ItineraryService = Depends(get_itinerary_service),
):
    """Give unscheduled stops a default one-stop-per-day schedule."""
    body = body or InitializeScheduleRequest()
    route, seeded = service.initialize_schedule(
        route_id,
        today=body.start_date,
        recalculate_after=body.recalculate_after,
    )
    return InitializeScheduleResponse(route=_route_response(route), seeded_stop_ids=seeded)


# =============================================================================
# Legs
# =============================================================================

@router.post("/routes/{route_id}/legs/refresh", response_model=LegRefreshResponse)
@limiter.limit(RateLimits.LEG_REFRESH, key_func=get_route_identifier)
def refresh_legs(
    request: Request,
    route_id: str,
    body: Optional[LegRefreshRequest] = None,
    service: ItineraryService = Depends(get_itinerary_service),
):
    """Route pending legs through OSRM now and recalculate the schedule.

    A routing provider failure aborts the refresh with 502 (504 on timeout).
    """
    body = body or LegRefreshRequest()
    route, result = service.refresh_legs(route_id, force=body.force)
    return LegRefreshResponse(
        route=_route_response(route),
        refreshed=result.refreshed,
        skipped=result.skipped,
        failed=result.failed,
        errors=result.errors,
    )
