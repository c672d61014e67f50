"""Pytest configuration and fixtures."""

from datetime import datetime
from zoneinfo import ZoneInfo

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import models  # noqa: F401
from app import app
from core.base import Base
from core.database import get_db
from core.rate_limiter import limiter
from src.itinerary_bc.route.domain.entities import Route, RouteScheduleSettings
from src.itinerary_bc.scheduling import regenerate_legs
from src.itinerary_bc.stop.domain.entities import RouteStop, StopKind

BERLIN = ZoneInfo("Europe/Berlin")


@pytest.fixture
def engine():
    """In-memory SQLite shared by every session of a test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory):
    """Create a test client for the FastAPI app, backed by SQLite."""
    def override_get_db():
        db = session_factory()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    limiter.enabled = False
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
    limiter.enabled = True


@pytest.fixture
def api_base_url():
    """Base URL for itinerary API endpoints."""
    return "/api/v1/itinerary"


@pytest.fixture
def at():
    """at(day, hour, minute=0) -> June 2025 instant in Europe/Berlin."""
    def _at(day: int, hour: int, minute: int = 0, zone: ZoneInfo = BERLIN) -> datetime:
        return datetime(2025, 6, day, hour, minute, tzinfo=zone)
    return _at


@pytest.fixture
def make_stop():
    def _make_stop(stop_id: str, position: int, start=None, end=None, **kwargs) -> RouteStop:
        kwargs.setdefault("place_id", f"place-{stop_id}")
        kwargs.setdefault("place_name", stop_id)
        kwargs.setdefault("kind", StopKind.DAY_STOP)
        return RouteStop(
            id=stop_id,
            route_id="route-1",
            position_index=position,
            planned_start=start,
            planned_end=end,
            **kwargs,
        )
    return _make_stop


@pytest.fixture
def make_route():
    """make_route(stops, durations={(from, to): seconds}) with routed legs."""
    def _make_route(stops, durations=None, **settings) -> Route:
        route = Route(id="route-1", name="Test trip", settings=RouteScheduleSettings(**settings))
        route.stops = list(stops)
        regenerate_legs(route)
        for leg in route.legs:
            leg.needs_routing = False
            leg.duration_seconds = (durations or {}).get(leg.pair, 0)
        return route
    return _make_route
