"""Tests for settings, rate limit keys and the Celery wiring of the leg refresh tasks."""

import pytest
from starlette.requests import Request

from core.celery import ROUTING_QUEUE, celery_app
from core.config import Settings
from core.database import _engine_options
from core.rate_limiter import get_client_identifier, get_route_identifier
from src.itinerary_bc.route.infrastructure import tasks


def _request(headers=None, path_params=None) -> Request:
    return Request({
        "type": "http",
        "method": "POST",
        "path": "/",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "path_params": path_params or {},
        "client": ("127.0.0.1", 5000),
    })


class TestRateLimitKeys:
    def test_remote_address_by_default(self):
        assert get_client_identifier(_request()) == "127.0.0.1"

    def test_first_forwarded_address_wins(self):
        request = _request({"X-Forwarded-For": "10.0.0.1, 10.0.0.2"})
        assert get_client_identifier(request) == "10.0.0.1"

    def test_route_key_includes_route_id(self):
        request = _request(path_params={"route_id": "r-1"})
        assert get_route_identifier(request) == "127.0.0.1:route/r-1"

    def test_route_key_without_route_falls_back_to_client(self):
        assert get_route_identifier(_request()) == "127.0.0.1"


class TestCeleryWiring:
    def test_beat_sweep_targets_registered_task(self):
        entry = celery_app.conf.beat_schedule["refresh-pending-legs"]
        assert entry["task"] == tasks.refresh_pending_legs.name
        assert entry["options"]["queue"] == ROUTING_QUEUE

    def test_refresh_task_is_routed_and_rate_limited(self):
        name = tasks.refresh_route_legs.name
        assert name in celery_app.conf.task_annotations
        assert celery_app.conf.task_routes[name.rsplit(".", 1)[0] + ".*"] == {"queue": ROUTING_QUEUE}


class TestSettings:
    def test_override_replaces_postgres_url(self):
        assert Settings(DATABASE_URL_OVERRIDE="sqlite:///trip.db").DATABASE_URL == "sqlite:///trip.db"

    def test_postgres_url_uses_psycopg(self):
        url = Settings(DATABASE_URL_OVERRIDE=None, POSTGRES_HOST="db", POSTGRES_PORT=5433).DATABASE_URL
        assert url.startswith("postgresql+psycopg://")
        assert "@db:5433/" in url

    def test_sqlite_engine_has_no_pool_sizing(self):
        assert "pool_size" not in _engine_options("sqlite:///trip.db")

    def test_unknown_default_zone_falls_back_in_development(self):
        settings = Settings(DEFAULT_TIMEZONE="Mars/Olympus", POSTGRES_PASSWORD="x")
        settings.validate_development_settings()
        assert settings.DEFAULT_TIMEZONE == "Europe/Berlin"

    def test_unknown_default_zone_fails_in_production(self):
        settings = Settings(
            ENVIRONMENT="production", DEFAULT_TIMEZONE="Mars/Olympus", POSTGRES_PASSWORD="s3cret"
        )
        with pytest.raises(ValueError, match="DEFAULT_TIMEZONE"):
            settings.validate_production_settings()
