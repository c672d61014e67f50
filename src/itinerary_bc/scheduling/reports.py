from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Set


@dataclass
class ConflictingStop:
    """A stop taking part in at least one order/time inversion."""
    stop_id: str
    place_name: str
    positional_index: int
    temporal_index: int
    planned_start: Optional[datetime] = None


@dataclass
class RouteOrderConflictReport:
    """Result of comparing the positional and temporal sequences of a route."""
    has_conflict: bool
    conflicting_stops: List[ConflictingStop] = field(default_factory=list)
    positional_sequence: List[str] = field(default_factory=list)  # stop ids
    temporal_sequence: List[str] = field(default_factory=list)  # stop ids

    @property
    def conflicting_stop_ids(self) -> Set[str]:
        return {stop.stop_id for stop in self.conflicting_stops}


@dataclass
class ScheduleChangeConflictReport:
    """Prediction of what a proposed planned_start would do to the route order."""
    would_create_conflict: bool
    stop_id: str
    place_name: str
    current_positional_index: int
    proposed_temporal_index: int
    suggested_reorder: bool = False
    affected_stops: Set[str] = field(default_factory=set)
    message: Optional[str] = None


@dataclass
class StopScheduleChange:
    """Before/after snapshot of one stop during recalculation."""
    stop_id: str
    place_name: str
    old_start: Optional[datetime]
    old_end: Optional[datetime]
    new_start: Optional[datetime]
    new_end: Optional[datetime]
    was_locked: bool

    @property
    def changed(self) -> bool:
        return self.old_start != self.new_start or self.old_end != self.new_end


@dataclass
class RecalculationResult:
    """Outcome of a full-route schedule recalculation."""
    updated_stop_count: int = 0
    changes: List[StopScheduleChange] = field(default_factory=list)
    preserved_locked_days: bool = True
    # Anchors that forward propagation could not reach in time (never raised)
    warnings: List[str] = field(default_factory=list)
