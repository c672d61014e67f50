"""Request/response schemas for the itinerary endpoints.

Incoming instants are AwareDatetime: a timestamp without a UTC offset is
rejected with 422 before it reaches the engine.
"""

from datetime import date, datetime, time
from typing import List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import AliasChoices, AwareDatetime, BaseModel, Field, field_validator



def _check_zone(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    try:
        ZoneInfo(value)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(f"Unknown time zone: {value}")
    return value


# =============================================================================
# Route schedule settings
# =============================================================================

class RouteScheduleSettingsSchema(BaseModel):
    timezone: Optional[str] = Field(None, description="IANA zone (server default when omitted)")
    start_at: Optional[AwareDatetime] = None
    end_at: Optional[AwareDatetime] = None
    default_arrival_time: Optional[time] = None
    default_departure_time: Optional[time] = None

    @field_validator("timezone")
    @classmethod
    def validate_zone(cls, v):
        return _check_zone(v)

    class Config:
        from_attributes = True


class UpdateScheduleSettingsRequest(RouteScheduleSettingsSchema):
    recalculate_after: bool = False


# =============================================================================
# Stops and legs
# =============================================================================

class StopCreateRequest(BaseModel):
    place_id: str
    place_name: str = ""
    lat: Optional[float] = Field(None, ge=-90, le=90)
    lon: Optional[float] = Field(None, ge=-180, le=180)
    kind: int = Field(0, ge=0, le=2, description="0=overnight, 1=day stop, 2=waypoint")
    timezone: Optional[str] = None
    planned_start: Optional[AwareDatetime] = None
    planned_end: Optional[AwareDatetime] = None
    stay_nights: Optional[int] = Field(None, ge=0)
    stay_duration_minutes: Optional[int] = Field(None, ge=0)
    start_locked: bool = False
    end_locked: bool = False

    @field_validator("timezone")
    @classmethod
    def validate_zone(cls, v):
        return _check_zone(v)


class AddStopRequest(StopCreateRequest):
    position: Optional[int] = Field(None, ge=0, description="Insert position (appended when omitted)")
    recalculate_after: bool = False


class StopScheduleUpdateRequest(BaseModel):
    """Patch of one stop; omitted or null fields keep their stored value."""

    planned_start: Optional[AwareDatetime] = None
    planned_end: Optional[AwareDatetime] = None
    start_locked: Optional[bool] = None
    end_locked: Optional[bool] = None
    stay_nights: Optional[int] = Field(None, ge=0)
    stay_duration_minutes: Optional[int] = Field(None, ge=0)
    allow_conflict: bool = False
    clear_times: bool = Field(False, description="Remove both planned times (the stop must end up unlocked)")


class StopResponse(BaseModel):
    id: str
    place_id: str
    place_name: str
    lat: Optional[float]
    lon: Optional[float]
    position_index: int
    kind: int
    timezone: Optional[str]
    planned_start: Optional[datetime]
    planned_end: Optional[datetime]
    stay_nights: Optional[int]
    stay_duration_minutes: Optional[int]
    start_locked: bool
    end_locked: bool

    class Config:
        from_attributes = True


class LegResponse(BaseModel):
    id: str
    from_stop_id: str
    to_stop_id: str
    position_index: int
    distance_meters: int
    duration_seconds: int
    geometry: Optional[List[List[float]]]
    provider: str
    calculated_at: Optional[datetime]
    planned_start: Optional[datetime]
    planned_end: Optional[datetime]
    needs_routing: bool

    class Config:
        from_attributes = True


# =============================================================================
# Conflicts
# =============================================================================

class ConflictingStopResponse(BaseModel):
    stop_id: str
    place_name: str
    positional_index: int
    temporal_index: int
    planned_start: Optional[datetime]

    class Config:
        from_attributes = True


class RouteOrderConflictResponse(BaseModel):
    has_conflict: bool
    conflicting_stops: List[ConflictingStopResponse]
    positional_sequence: List[str]
    temporal_sequence: List[str]

    class Config:
        from_attributes = True


class ScheduleChangeCheckRequest(BaseModel):
    stop_id: str
    proposed_start: AwareDatetime
    proposed_end: Optional[AwareDatetime] = None


class ScheduleChangeConflictResponse(BaseModel):
    would_create_conflict: bool
    stop_id: str
    place_name: str
    current_positional_index: int
    proposed_temporal_index: int
    suggested_reorder: bool
    affected_stops: List[str]
    message: Optional[str]

    @field_validator("affected_stops", mode="before")
    @classmethod
    def sort_affected(cls, v):
        return sorted(v) if v is not None else []

    class Config:
        from_attributes = True


class ResolveConflictsRequest(BaseModel):
    recalculate_after: bool = False
    preserve_locked_days: bool = True


# =============================================================================
# Recalculation / reorder
# =============================================================================

class StopScheduleChangeResponse(BaseModel):
    stop_id: str
    place_name: str
    old_start: Optional[datetime]
    old_end: Optional[datetime]
    new_start: Optional[datetime]
    new_end: Optional[datetime]
    was_locked: bool

    class Config:
        from_attributes = True


class RecalculationResultResponse(BaseModel):
    updated_stop_count: int
    changes: List[StopScheduleChangeResponse]
    preserved_locked_days: bool
    warnings: List[str]

    class Config:
        from_attributes = True


class RecalculateRequest(BaseModel):
    preserve_locked_days: bool = True


class ReorderRequest(BaseModel):
    """Also accepts the camelCase names sent by the web frontend."""

    new_place_order: List[str] = Field(
        ...,
        validation_alias=AliasChoices("new_place_order", "newPlaceOrder"),
        description="Stop ids or place ids in the new visit order",
    )
    recalculate_schedule: bool = Field(True, validation_alias=AliasChoices("recalculate_schedule", "recalculateSchedule"))
    preserve_locked_days: bool = Field(True, validation_alias=AliasChoices("preserve_locked_days", "preserveLockedDays"))


class InitializeScheduleRequest(BaseModel):
    start_date: Optional[date] = Field(None, description="First day of the trip (today when omitted)")
    recalculate_after: bool = False


class LegRefreshRequest(BaseModel):
    force: bool = Field(False, description="Re-route every leg, not only pending ones")


# =============================================================================
# Routes
# =============================================================================

class RouteCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    settings: RouteScheduleSettingsSchema = RouteScheduleSettingsSchema()
    stops: List[StopCreateRequest] = []


class RouteResponse(BaseModel):
    id: str
    name: str
    description: Optional[str]
    version: int
    settings: RouteScheduleSettingsSchema
    stops: List[StopResponse]
    legs: List[LegResponse]
    conflicts: RouteOrderConflictResponse
    created_at: Optional[datetime]
    updated_at: Optional[datetime]


class RouteMutationResponse(BaseModel):
    route: RouteResponse
    recalculation: Optional[RecalculationResultResponse] = None


class StopScheduleUpdateResponse(BaseModel):
    route: RouteResponse
    change_report: Optional[ScheduleChangeConflictResponse] = None


class ConflictResolutionResponse(BaseModel):
    route: RouteResponse
    before: RouteOrderConflictResponse
    after: RouteOrderConflictResponse
    recalculation: Optional[RecalculationResultResponse] = None


class InitializeScheduleResponse(BaseModel):
    route: RouteResponse
    seeded_stop_ids: List[str]


class LegRefreshResponse(BaseModel):
    route: RouteResponse
    refreshed: List[str]
    skipped: List[str]
    failed: List[str]
    errors: List[str]
