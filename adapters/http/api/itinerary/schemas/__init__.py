"""API schemas for itinerary endpoints."""

from .itinerary_schemas import (
    RouteScheduleSettingsSchema,
    UpdateScheduleSettingsRequest,
    StopCreateRequest,
    AddStopRequest,
    StopScheduleUpdateRequest,
    StopResponse,
    LegResponse,
    ConflictingStopResponse,
    RouteOrderConflictResponse,
    ScheduleChangeCheckRequest,
    ScheduleChangeConflictResponse,
    ResolveConflictsRequest,
    StopScheduleChangeResponse,
    RecalculationResultResponse,
    RecalculateRequest,
    ReorderRequest,
    InitializeScheduleRequest,
    LegRefreshRequest,
    RouteCreateRequest,
    RouteResponse,
    RouteMutationResponse,
    StopScheduleUpdateResponse,
    ConflictResolutionResponse,
    InitializeScheduleResponse,
    LegRefreshResponse,
)

__all__ = [
    "RouteScheduleSettingsSchema",
    "UpdateScheduleSettingsRequest",
    "StopCreateRequest",
    "AddStopRequest",
    "StopScheduleUpdateRequest",
    "StopResponse",
    "LegResponse",
    "ConflictingStopResponse",
    "RouteOrderConflictResponse",
    "ScheduleChangeCheckRequest",
    "ScheduleChangeConflictResponse",
    "ResolveConflictsRequest",
    "StopScheduleChangeResponse",
    "RecalculationResultResponse",
    "RecalculateRequest",
    "ReorderRequest",
    "InitializeScheduleRequest",
    "LegRefreshRequest",
    "RouteCreateRequest",
    "RouteResponse",
    "RouteMutationResponse",
    "StopScheduleUpdateResponse",
    "ConflictResolutionResponse",
    "InitializeScheduleResponse",
    "LegRefreshResponse",
]
