"""Persistence of the route aggregate (route + stops + legs).

Saving is conditioned on the route version read by the caller. Position
indexes are written in two passes (temporary negative values, then the final
ones) so renumbering never collides with the (route_id, position_index)
unique constraint.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from src.itinerary_bc.leg.domain.entities import RouteLeg
from src.itinerary_bc.leg.infrastructure.models import RouteLegModel
from src.itinerary_bc.route.domain.entities import Route, RouteScheduleSettings
from src.itinerary_bc.route.domain.exceptions import RouteNotFoundError, StaleRouteError
from src.itinerary_bc.route.infrastructure.models import RouteModel
from src.itinerary_bc.stop.domain.entities import RouteStop, StopKind
from src.itinerary_bc.stop.infrastructure.models import RouteStopModel

logger = logging.getLogger(__name__)


def _as_aware(value: Optional[datetime], zone=None) -> Optional[datetime]:
    """Database value -> offset-aware instant, presented in zone.

    Backends without time zone support (SQLite) hand back naive values;
    those were written as UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(zone) if zone is not None else value


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_db(value: Optional[datetime]) -> Optional[datetime]:
    """Instants are stored in UTC; SQLite would otherwise drop the offset."""
    return value.astimezone(timezone.utc) if value is not None else None


class RouteRepository:
    """Loads and saves whole route aggregates."""

    def __init__(self, db: Session):
        self.db = db

    # =========================================================================
    # Reads
    # =========================================================================

    def get(self, route_id: str) -> Route:
        return self._to_entity(self._load(route_id))

    def exists(self, route_id: str) -> bool:
        return self.db.query(RouteModel.id).filter(RouteModel.id == route_id).first() is not None

    def list_route_ids_with_pending_legs(self) -> List[str]:
        rows = self.db.query(RouteLegModel.route_id).filter(
            RouteLegModel.needs_routing.is_(True)
        ).distinct().all()
        return [row.route_id for row in rows]

    def _load(self, route_id: str) -> RouteModel:
        model = self.db.query(RouteModel).filter(RouteModel.id == route_id).first()
        if model is None:
            raise RouteNotFoundError(route_id)
        return model

    # =========================================================================
    # Writes
    # =========================================================================

    def create(self, route: Route) -> Route:
        model = RouteModel(id=route.id, version=1, created_at=_utcnow())
        self._apply_route(model, route)
        self.db.add(model)
        self.db.flush()

        for stop in route.stops:
            model.stops.append(self._new_stop_model(stop))
        self.db.flush()
        for leg in route.legs:
            model.legs.append(self._new_leg_model(leg))
        self.db.flush()

        logger.info(f"Created route {route.id} with {len(route.stops)} stops")
        return self._to_entity(model)

    def save(self, route: Route) -> Route:
        """Write the aggregate back if nobody else has changed it since it was read.

        Raises:
            RouteNotFoundError: the route no longer exists.
            StaleRouteError: the stored version differs from route.version.
        """
        model = self._load(route.id)
        if model.version != route.version:
            raise StaleRouteError(route.id, route.version, model.version)

        try:
            self._apply_route(model, route)
            # Always touch the row so the version is bumped and checked
            model.updated_at = _utcnow()

            self._remove_legs(model, route)
            self._remove_stops(model, route)
            self._write_stops(model, route)
            self._write_legs(model, route)
        except StaleDataError as e:
            logger.warning(f"Version conflict saving route {route.id} (read version {route.version})")
            raise StaleRouteError(route.id, route.version) from e

        route.version = model.version
        route.updated_at = _as_aware(model.updated_at)
        logger.debug(f"Saved route {route.id} at version {route.version}")
        return route

    def delete(self, route_id: str) -> None:
        self.db.delete(self._load(route_id))
        self.db.flush()

    def _apply_route(self, model: RouteModel, route: Route) -> None:
        settings = route.settings
        model.name = route.name
        model.description = route.description
        model.timezone = settings.timezone
        model.start_at = _to_db(settings.start_at)
        model.end_at = _to_db(settings.end_at)
        model.default_arrival_time = settings.default_arrival_time
        model.default_departure_time = settings.default_departure_time

    def _remove_legs(self, model: RouteModel, route: Route) -> None:
        keep = {leg.id for leg in route.legs}
        for leg_model in [m for m in model.legs if m.id not in keep]:
            model.legs.remove(leg_model)
        self.db.flush()

    def _remove_stops(self, model: RouteModel, route: Route) -> None:
        keep = {stop.id for stop in route.stops}
        for stop_model in [m for m in model.stops if m.id not in keep]:
            model.stops.remove(stop_model)
        self.db.flush()

    def _write_stops(self, model: RouteModel, route: Route) -> None:
        existing: Dict[str, RouteStopModel] = {m.id: m for m in model.stops}

        # Pass 1: park moved stops on negative indexes
        moved = False
        for stop in route.stops:
            stop_model = existing.get(stop.id)
            if stop_model is not None and stop_model.position_index != stop.position_index:
                stop_model.position_index = -(stop.position_index + 1)
                moved = True
        if moved:
            self.db.flush()

        # Pass 2: final indexes and field values, new stops
        for stop in route.stops:
            stop_model = existing.get(stop.id)
            if stop_model is None:
                model.stops.append(self._new_stop_model(stop))
            else:
                self._apply_stop(stop_model, stop)
        self.db.flush()

    def _write_legs(self, model: RouteModel, route: Route) -> None:
        existing: Dict[str, RouteLegModel] = {m.id: m for m in model.legs}
        for leg in route.legs:
            leg_model = existing.get(leg.id)
            if leg_model is None:
                model.legs.append(self._new_leg_model(leg))
            else:
                self._apply_leg(leg_model, leg)
        self.db.flush()

    # =========================================================================
    # Mapping
    # =========================================================================

    def _new_stop_model(self, stop: RouteStop) -> RouteStopModel:
        stop_model = RouteStopModel(id=stop.id)
        self._apply_stop(stop_model, stop)
        return stop_model

    def _apply_stop(self, stop_model: RouteStopModel, stop: RouteStop) -> None:
        stop_model.place_id = stop.place_id
        stop_model.place_name = stop.place_name
        stop_model.lat = stop.lat
        stop_model.lon = stop.lon
        stop_model.position_index = stop.position_index
        stop_model.kind = int(stop.kind)
        stop_model.timezone = stop.timezone
        stop_model.stay_nights = stop.stay_nights
        stop_model.stay_duration_minutes = stop.stay_duration_minutes
        stop_model.start_locked = stop.start_locked
        stop_model.end_locked = stop.end_locked
        # Equal instants in another offset are not a change
        if _as_aware(stop_model.planned_start) != stop.planned_start:
            stop_model.planned_start = _to_db(stop.planned_start)
        if _as_aware(stop_model.planned_end) != stop.planned_end:
            stop_model.planned_end = _to_db(stop.planned_end)

    def _new_leg_model(self, leg: RouteLeg) -> RouteLegModel:
        leg_model = RouteLegModel(id=leg.id)
        self._apply_leg(leg_model, leg)
        return leg_model

    def _apply_leg(self, leg_model: RouteLegModel, leg: RouteLeg) -> None:
        leg_model.from_stop_id = leg.from_stop_id
        leg_model.to_stop_id = leg.to_stop_id
        leg_model.position_index = leg.position_index
        leg_model.distance_meters = leg.distance_meters
        leg_model.duration_seconds = leg.duration_seconds
        leg_model.geometry = leg.geometry
        leg_model.provider = leg.provider
        leg_model.calculated_at = _to_db(leg.calculated_at)
        leg_model.needs_routing = leg.needs_routing
        if _as_aware(leg_model.planned_start) != leg.planned_start:
            leg_model.planned_start = _to_db(leg.planned_start)
        if _as_aware(leg_model.planned_end) != leg.planned_end:
            leg_model.planned_end = _to_db(leg.planned_end)

    def _to_entity(self, model: RouteModel) -> Route:
        settings = RouteScheduleSettings(
            timezone=model.timezone,
            default_arrival_time=model.default_arrival_time,
            default_departure_time=model.default_departure_time,
        )
        route = Route(
            id=model.id,
            name=model.name or "",
            description=model.description,
            settings=settings,
            version=model.version,
            created_at=_as_aware(model.created_at),
            updated_at=_as_aware(model.updated_at),
        )
        route_zone = route.zone
        settings.start_at = _as_aware(model.start_at, route_zone)
        settings.end_at = _as_aware(model.end_at, route_zone)

        for stop_model in sorted(model.stops, key=lambda m: m.position_index):
            stop = RouteStop(
                id=stop_model.id,
                route_id=model.id,
                place_id=stop_model.place_id,
                position_index=stop_model.position_index,
                place_name=stop_model.place_name or "",
                lat=stop_model.lat,
                lon=stop_model.lon,
                kind=StopKind(stop_model.kind),
                timezone=stop_model.timezone,
                stay_nights=stop_model.stay_nights,
                stay_duration_minutes=stop_model.stay_duration_minutes,
                start_locked=bool(stop_model.start_locked),
                end_locked=bool(stop_model.end_locked),
            )
            zone = route.effective_timezone(stop)
            stop.planned_start = _as_aware(stop_model.planned_start, zone)
            stop.planned_end = _as_aware(stop_model.planned_end, zone)
            route.stops.append(stop)

        for leg_model in sorted(model.legs, key=lambda m: m.position_index):
            route.legs.append(RouteLeg(
                id=leg_model.id,
                route_id=model.id,
                from_stop_id=leg_model.from_stop_id,
                to_stop_id=leg_model.to_stop_id,
                position_index=leg_model.position_index,
                distance_meters=leg_model.distance_meters or 0,
                duration_seconds=leg_model.duration_seconds or 0,
                geometry=leg_model.geometry,
                provider=leg_model.provider,
                calculated_at=_as_aware(leg_model.calculated_at),
                planned_start=_as_aware(leg_model.planned_start, route_zone),
                planned_end=_as_aware(leg_model.planned_end, route_zone),
                needs_routing=bool(leg_model.needs_routing),
            ))
        return route
