"""Integration tests for the /itinerary endpoints.

Run against in-memory SQLite (see conftest.py); the routing provider is
replaced with an httpx mock transport where legs are refreshed.
"""

from datetime import datetime

import httpx
import pytest
from fastapi import Depends
from sqlalchemy.orm import Session

from adapters.http.api.itinerary.routers.itinerary_router import get_itinerary_service
from app import app
from core.database import get_db
from src.itinerary_bc.route.infrastructure.services.itinerary_service import ItineraryService
from src.itinerary_bc.routing.infrastructure.services.leg_routing_service import LegRoutingService
from src.itinerary_bc.routing.infrastructure.services.osrm_client import OsrmClient


def _instant(value: str) -> datetime:
    return datetime.fromisoformat(value)


def _ids_by_place(route_json) -> dict:
    return {stop["place_id"]: stop["id"] for stop in route_json["stops"]}


def _order(route_json) -> list:
    return [stop["place_id"] for stop in sorted(route_json["stops"], key=lambda s: s["position_index"])]


@pytest.fixture
def route_payload():
    return {
        "name": "Alps road trip",
        "settings": {"timezone": "Europe/Berlin"},
        "stops": [
            {
                "place_id": "innsbruck",
                "place_name": "Innsbruck",
                "lat": 47.26,
                "lon": 11.39,
                "kind": 1,
                "planned_start": "2025-06-01T09:00:00+02:00",
                "planned_end": "2025-06-01T10:00:00+02:00",
                "start_locked": True,
                "end_locked": True,
            },
            {"place_id": "bolzano", "place_name": "Bolzano", "lat": 46.49, "lon": 11.35,
             "kind": 1, "stay_duration_minutes": 120},
            {"place_id": "verona", "place_name": "Verona", "kind": 1},
        ],
    }


@pytest.fixture
def created_route(client, api_base_url, route_payload):
    response = client.post(f"{api_base_url}/routes", json=route_payload)
    assert response.status_code == 201
    return response.json()


class TestRoutes:
    """Tests for creating and reading routes."""

    def test_create_route(self, created_route):
        assert created_route["version"] == 1
        assert _order(created_route) == ["innsbruck", "bolzano", "verona"]
        assert [stop["position_index"] for stop in created_route["stops"]] == [0, 1, 2]
        assert len(created_route["legs"]) == 2
        assert all(leg["needs_routing"] for leg in created_route["legs"])
        assert created_route["conflicts"]["has_conflict"] is False

    def test_get_route(self, client, api_base_url, created_route):
        response = client.get(f"{api_base_url}/routes/{created_route['id']}")
        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "Alps road trip"
        innsbruck = data["stops"][0]
        assert _instant(innsbruck["planned_start"]) == _instant("2025-06-01T09:00:00+02:00")

    def test_unknown_route_returns_404(self, client, api_base_url):
        response = client.get(f"{api_base_url}/routes/does-not-exist")
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    def test_naive_datetime_is_rejected(self, client, api_base_url, route_payload):
        route_payload["stops"][0]["planned_start"] = "2025-06-01T09:00:00"
        response = client.post(f"{api_base_url}/routes", json=route_payload)
        assert response.status_code == 422

    def test_unknown_time_zone_is_rejected(self, client, api_base_url, route_payload):
        route_payload["settings"]["timezone"] = "Mars/Olympus"
        response = client.post(f"{api_base_url}/routes", json=route_payload)
        assert response.status_code == 422

    def test_route_end_before_start_is_rejected(self, client, api_base_url, created_route):
        response = client.put(
            f"{api_base_url}/routes/{created_route['id']}/schedule",
            json={
                "timezone": "Europe/Berlin",
                "start_at": "2025-06-05T09:00:00+02:00",
                "end_at": "2025-06-01T09:00:00+02:00",
            },
        )
        assert response.status_code == 422
        assert response.json()["error"] == "invalid_schedule"


class TestStops:
    """Tests for adding, removing, reordering and editing stops."""

    def test_add_stop_in_the_middle(self, client, api_base_url, created_route):
        response = client.post(
            f"{api_base_url}/routes/{created_route['id']}/stops",
            json={"place_id": "brixen", "place_name": "Brixen", "kind": 2, "position": 1},
        )
        assert response.status_code == 201
        route = response.json()["route"]
        assert _order(route) == ["innsbruck", "brixen", "bolzano", "verona"]
        assert route["version"] == 2

    def test_delete_stop(self, client, api_base_url, created_route):
        ids = _ids_by_place(created_route)
        response = client.delete(f"{api_base_url}/routes/{created_route['id']}/stops/{ids['bolzano']}")
        assert response.status_code == 200
        route = response.json()["route"]
        assert _order(route) == ["innsbruck", "verona"]
        assert [(leg["from_stop_id"], leg["to_stop_id"]) for leg in route["legs"]] == [
            (ids["innsbruck"], ids["verona"])
        ]

    def test_delete_unknown_stop(self, client, api_base_url, created_route):
        response = client.delete(f"{api_base_url}/routes/{created_route['id']}/stops/nope")
        assert response.status_code == 404

    def test_reorder_by_place_id(self, client, api_base_url, created_route):
        response = client.put(
            f"{api_base_url}/routes/{created_route['id']}/stops/reorder",
            json={"new_place_order": ["verona", "innsbruck", "bolzano"], "recalculate_schedule": False},
        )
        assert response.status_code == 200
        data = response.json()
        assert _order(data["route"]) == ["verona", "innsbruck", "bolzano"]
        assert data["recalculation"] is None

    def test_reorder_accepts_frontend_field_names(self, client, api_base_url, created_route):
        response = client.put(
            f"{api_base_url}/routes/{created_route['id']}/stops/reorder",
            json={"newPlaceOrder": ["innsbruck", "verona", "bolzano"], "recalculateSchedule": False},
        )
        assert response.status_code == 200
        data = response.json()
        assert _order(data["route"]) == ["innsbruck", "verona", "bolzano"]
        assert data["recalculation"] is None

    def test_reorder_with_missing_stop(self, client, api_base_url, created_route):
        response = client.put(
            f"{api_base_url}/routes/{created_route['id']}/stops/reorder",
            json={"new_place_order": ["verona", "innsbruck"]},
        )
        assert response.status_code == 422
        data = response.json()
        assert data["error"] == "invalid_order"
        assert data["missing"] == [_ids_by_place(created_route)["bolzano"]]

    def test_conflicting_time_edit_is_rejected(self, client, api_base_url, created_route):
        ids = _ids_by_place(created_route)
        response = client.put(
            f"{api_base_url}/routes/{created_route['id']}/stops/{ids['bolzano']}/schedule",
            json={"planned_start": "2025-06-01T08:00:00+02:00"},
        )
        assert response.status_code == 409
        report = response.json()["change_report"]
        assert report["would_create_conflict"] is True
        assert report["suggested_reorder"] is True
        assert set(report["affected_stops"]) == {ids["innsbruck"], ids["bolzano"]}

        unchanged = client.get(f"{api_base_url}/routes/{created_route['id']}").json()
        assert unchanged["stops"][1]["planned_start"] is None

    def test_conflicting_time_edit_can_be_forced(self, client, api_base_url, created_route):
        ids = _ids_by_place(created_route)
        response = client.put(
            f"{api_base_url}/routes/{created_route['id']}/stops/{ids['bolzano']}/schedule",
            json={"planned_start": "2025-06-01T08:00:00+02:00", "allow_conflict": True},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["change_report"]["would_create_conflict"] is True
        assert data["route"]["conflicts"]["has_conflict"] is True

    def test_end_without_start_is_rejected(self, client, api_base_url, created_route):
        ids = _ids_by_place(created_route)
        response = client.put(
            f"{api_base_url}/routes/{created_route['id']}/stops/{ids['bolzano']}/schedule",
            json={"planned_end": "2025-06-01T12:00:00+02:00"},
        )
        assert response.status_code == 422

    def test_lock_only_edit_keeps_planned_times(self, client, api_base_url, created_route):
        ids = _ids_by_place(created_route)
        response = client.put(
            f"{api_base_url}/routes/{created_route['id']}/stops/{ids['innsbruck']}/schedule",
            json={"end_locked": False},
        )
        assert response.status_code == 200
        assert response.json()["change_report"] is None

        innsbruck = response.json()["route"]["stops"][0]
        assert innsbruck["start_locked"] is True
        assert innsbruck["end_locked"] is False
        assert _instant(innsbruck["planned_start"]) == _instant("2025-06-01T09:00:00+02:00")
        assert _instant(innsbruck["planned_end"]) == _instant("2025-06-01T10:00:00+02:00")

    def test_start_only_edit_keeps_stored_end(self, client, api_base_url, created_route):
        ids = _ids_by_place(created_route)
        response = client.put(
            f"{api_base_url}/routes/{created_route['id']}/stops/{ids['innsbruck']}/schedule",
            json={"planned_start": "2025-06-01T08:30:00+02:00"},
        )
        assert response.status_code == 200
        assert response.json()["change_report"]["would_create_conflict"] is False

        innsbruck = response.json()["route"]["stops"][0]
        assert _instant(innsbruck["planned_start"]) == _instant("2025-06-01T08:30:00+02:00")
        assert _instant(innsbruck["planned_end"]) == _instant("2025-06-01T10:00:00+02:00")

    def test_start_moved_past_stored_end_is_rejected(self, client, api_base_url, created_route):
        ids = _ids_by_place(created_route)
        response = client.put(
            f"{api_base_url}/routes/{created_route['id']}/stops/{ids['innsbruck']}/schedule",
            json={"planned_start": "2025-06-01T11:00:00+02:00"},
        )
        assert response.status_code == 422

    def test_clearing_times_of_locked_stop_is_rejected(self, client, api_base_url, created_route):
        ids = _ids_by_place(created_route)
        url = f"{api_base_url}/routes/{created_route['id']}/stops/{ids['innsbruck']}/schedule"

        response = client.put(url, json={"clear_times": True, "end_locked": False})
        assert response.status_code == 422
        assert response.json()["error"] == "invalid_schedule"

        stored = client.get(f"{api_base_url}/routes/{created_route['id']}").json()["stops"][0]
        assert stored["end_locked"] is True
        assert stored["planned_start"] is not None

    def test_clearing_times_after_unlocking(self, client, api_base_url, created_route):
        ids = _ids_by_place(created_route)
        response = client.put(
            f"{api_base_url}/routes/{created_route['id']}/stops/{ids['innsbruck']}/schedule",
            json={"clear_times": True, "start_locked": False, "end_locked": False},
        )
        assert response.status_code == 200
        innsbruck = response.json()["route"]["stops"][0]
        assert innsbruck["planned_start"] is None
        assert innsbruck["planned_end"] is None


class TestConflicts:
    """Tests for conflict detection, prediction and resolution."""

    @pytest.fixture
    def conflicted_route(self, client, api_base_url, created_route):
        ids = _ids_by_place(created_route)
        client.put(
            f"{api_base_url}/routes/{created_route['id']}/stops/{ids['bolzano']}/schedule",
            json={"planned_start": "2025-06-01T08:00:00+02:00", "allow_conflict": True},
        )
        return created_route

    def test_get_conflicts(self, client, api_base_url, conflicted_route):
        response = client.get(f"{api_base_url}/routes/{conflicted_route['id']}/conflicts")
        assert response.status_code == 200
        data = response.json()
        ids = _ids_by_place(conflicted_route)
        assert data["has_conflict"] is True
        assert data["temporal_sequence"] == [ids["bolzano"], ids["innsbruck"]]
        assert {s["stop_id"] for s in data["conflicting_stops"]} == {ids["bolzano"], ids["innsbruck"]}

    def test_check_does_not_modify_route(self, client, api_base_url, created_route):
        ids = _ids_by_place(created_route)
        response = client.post(
            f"{api_base_url}/routes/{created_route['id']}/conflicts/check",
            json={"stop_id": ids["verona"], "proposed_start": "2025-06-01T18:00:00+02:00"},
        )
        assert response.status_code == 200
        report = response.json()
        assert report["would_create_conflict"] is False
        assert report["proposed_temporal_index"] == 1

        route = client.get(f"{api_base_url}/routes/{created_route['id']}").json()
        assert route["version"] == 1

    def test_resolve_orders_stops_by_time(self, client, api_base_url, conflicted_route):
        response = client.post(f"{api_base_url}/routes/{conflicted_route['id']}/conflicts/resolve")
        assert response.status_code == 200
        data = response.json()
        assert data["before"]["has_conflict"] is True
        assert data["after"]["has_conflict"] is False
        assert _order(data["route"]) == ["bolzano", "innsbruck", "verona"]


class TestSchedule:
    """Tests for recalculation and default schedule seeding."""

    def test_recalculate(self, client, api_base_url, created_route):
        response = client.post(f"{api_base_url}/routes/{created_route['id']}/schedule/recalculate")
        assert response.status_code == 200
        data = response.json()
        assert data["recalculation"]["updated_stop_count"] == 2

        bolzano = data["route"]["stops"][1]
        assert _instant(bolzano["planned_start"]) == _instant("2025-06-01T10:00:00+02:00")
        assert _instant(bolzano["planned_end"]) == _instant("2025-06-01T12:00:00+02:00")
        verona = data["route"]["stops"][2]
        assert _instant(verona["planned_start"]) == _instant("2025-06-01T12:00:00+02:00")

    def test_recalculate_twice_changes_nothing(self, client, api_base_url, created_route):
        url = f"{api_base_url}/routes/{created_route['id']}/schedule/recalculate"
        client.post(url)
        response = client.post(url, json={"preserve_locked_days": True})
        assert response.json()["recalculation"]["updated_stop_count"] == 0

    def test_initialize_schedule(self, client, api_base_url):
        created = client.post(
            f"{api_base_url}/routes",
            json={"name": "Blank", "stops": [{"place_id": "a", "kind": 0}, {"place_id": "b", "kind": 1}]},
        ).json()

        response = client.post(
            f"{api_base_url}/routes/{created['id']}/schedule/initialize",
            json={"start_date": "2025-06-01"},
        )
        assert response.status_code == 200
        data = response.json()
        assert len(data["seeded_stop_ids"]) == 2
        first, second = data["route"]["stops"]
        assert _instant(first["planned_start"]) == _instant("2025-06-01T09:00:00+02:00")
        assert _instant(first["planned_end"]) == _instant("2025-06-02T09:00:00+02:00")
        assert _instant(second["planned_start"]) == _instant("2025-06-02T09:00:00+02:00")


class TestLegRefresh:
    """Tests for routing legs through a mocked OSRM."""

    @pytest.fixture
    def osrm(self):
        """Install a mock OSRM transport; change state["status"] to make it fail."""
        state = {
            "status": 200,
            "json": {
                "code": "Ok",
                "routes": [{"distance": 53000.0, "duration": 2700.0,
                            "geometry": {"coordinates": [[11.39, 47.26], [11.35, 46.49]]}}],
            },
        }

        def handler(request):
            return httpx.Response(state["status"], json=state["json"])

        def override(db: Session = Depends(get_db)) -> ItineraryService:
            client = OsrmClient(base_url="http://osrm.test", http_client=httpx.Client(transport=httpx.MockTransport(handler)))
            return ItineraryService(db, leg_routing=LegRoutingService(client))

        app.dependency_overrides[get_itinerary_service] = override
        yield state
        app.dependency_overrides.pop(get_itinerary_service, None)

    def test_refresh_routes_pending_legs_and_recalculates(self, client, api_base_url, created_route, osrm):
        response = client.post(f"{api_base_url}/routes/{created_route['id']}/legs/refresh")
        assert response.status_code == 200
        data = response.json()
        assert len(data["refreshed"]) == 1
        assert len(data["skipped"]) == 1

        leg = data["route"]["legs"][0]
        assert leg["duration_seconds"] == 2700
        assert leg["needs_routing"] is False
        bolzano = data["route"]["stops"][1]
        assert _instant(bolzano["planned_start"]) == _instant("2025-06-01T10:45:00+02:00")

    def test_provider_error_returns_502(self, client, api_base_url, created_route, osrm):
        osrm["status"] = 500
        response = client.post(f"{api_base_url}/routes/{created_route['id']}/legs/refresh")
        assert response.status_code == 502
        assert response.json()["error"] == "routing_provider_error"


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
