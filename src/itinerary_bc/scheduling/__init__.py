from .change_validator import validate_schedule_change
from .conflict_detector import detect_conflicts, detect_route_conflicts
from .recalculation import recalculate_schedule
from .reorder import apply_time_based_order, insert_stop, regenerate_legs, remove_stop, reorder_stops
from .reports import (
    ConflictingStop,
    RecalculationResult,
    RouteOrderConflictReport,
    ScheduleChangeConflictReport,
    StopScheduleChange,
)
from .schedule_initializer import seed_default_schedule

__all__ = [
    "validate_schedule_change",
    "detect_conflicts",
    "detect_route_conflicts",
    "recalculate_schedule",
    "apply_time_based_order",
    "insert_stop",
    "regenerate_legs",
    "remove_stop",
    "reorder_stops",
    "ConflictingStop",
    "RecalculationResult",
    "RouteOrderConflictReport",
    "ScheduleChangeConflictReport",
    "StopScheduleChange",
    "seed_default_schedule",
]
