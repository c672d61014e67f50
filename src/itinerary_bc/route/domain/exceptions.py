"""Errors raised by the itinerary bounded context.

All errors derive from ItineraryError so the HTTP layer can map them to
status codes in one place (see app.py).
"""
from typing import Iterable, List, Optional


class ItineraryError(Exception):
    """Base class for itinerary errors."""


class NotFoundError(ItineraryError):
    """A referenced route or stop does not exist."""


class RouteNotFoundError(NotFoundError):
    def __init__(self, route_id: str):
        self.route_id = route_id
        super().__init__(f"Route {route_id} not found")


class StopNotFoundError(NotFoundError):
    def __init__(self, stop_id: str, route_id: str):
        self.stop_id = stop_id
        self.route_id = route_id
        super().__init__(f"Stop {stop_id} not found in route {route_id}")


class InvalidOrderError(ItineraryError):
    """A reorder request is not a permutation of the route's stops."""

    def __init__(
        self,
        missing: Iterable[str] = (),
        duplicated: Iterable[str] = (),
        unknown: Iterable[str] = (),
    ):
        self.missing: List[str] = list(missing)
        self.duplicated: List[str] = list(duplicated)
        self.unknown: List[str] = list(unknown)

        parts = []
        if self.missing:
            parts.append(f"missing: {', '.join(self.missing)}")
        if self.duplicated:
            parts.append(f"duplicated: {', '.join(self.duplicated)}")
        if self.unknown:
            parts.append(f"unknown: {', '.join(self.unknown)}")
        super().__init__(
            "New order must contain every stop of the route exactly once ("
            + "; ".join(parts) + ")"
        )


class InvalidScheduleError(ItineraryError):
    """Planned instants are naive or out of order."""


class StaleRouteError(ItineraryError):
    """The route changed between read and write."""

    def __init__(self, route_id: str, expected_version: int, actual_version: Optional[int] = None):
        self.route_id = route_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Route {route_id} was modified concurrently "
            f"(expected version {expected_version}, found {actual_version if actual_version is not None else 'a newer one'})"
        )


class ScheduleConflictError(ItineraryError):
    """A stop time edit would put the route out of order."""

    def __init__(self, report):
        self.report = report
        super().__init__(report.message or f"New time for stop {report.stop_id} conflicts with the route order")
