"""Unit tests for the OSRM client and leg refresh, against a mocked transport."""

import httpx
import pytest

from src.itinerary_bc.routing.domain.exceptions import RoutingProviderError, RoutingProviderTimeoutError
from src.itinerary_bc.routing.infrastructure.services.leg_routing_service import LegRoutingService
from src.itinerary_bc.routing.infrastructure.services.osrm_client import OsrmClient

OSRM_OK = {
    "code": "Ok",
    "routes": [
        {
            "distance": 12345.6,
            "duration": 987.4,
            "geometry": {"type": "LineString", "coordinates": [[13.4, 52.5], [13.5, 52.6]]},
        }
    ],
}


def _client(handler) -> OsrmClient:
    return OsrmClient(
        base_url="http://osrm.test/",
        profile="driving",
        timeout=5.0,
        http_client=httpx.Client(transport=httpx.MockTransport(handler)),
    )


class TestOsrmClient:
    def test_route_pair_parses_metrics(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json=OSRM_OK)

        metrics = _client(handler).route_pair(52.5, 13.4, 52.6, 13.5)

        assert metrics.distance_meters == 12346
        assert metrics.duration_seconds == 987
        assert metrics.geometry == [[13.4, 52.5], [13.5, 52.6]]
        assert metrics.provider == "OSRM"

        url = requests[0].url
        assert url.path == "/route/v1/driving/13.4,52.5;13.5,52.6"
        assert url.params["overview"] == "full"
        assert url.params["geometries"] == "geojson"

    def test_no_route(self):
        client = _client(lambda request: httpx.Response(200, json={"code": "NoRoute", "routes": []}))
        with pytest.raises(RoutingProviderError, match="NoRoute"):
            client.route_pair(52.5, 13.4, 40.7, -74.0)

    def test_http_error(self):
        client = _client(lambda request: httpx.Response(500, text="boom"))
        with pytest.raises(RoutingProviderError):
            client.route_pair(52.5, 13.4, 52.6, 13.5)

    def test_invalid_json(self):
        client = _client(lambda request: httpx.Response(200, text="not json"))
        with pytest.raises(RoutingProviderError):
            client.route_pair(52.5, 13.4, 52.6, 13.5)

    def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(RoutingProviderTimeoutError):
            _client(handler).route_pair(52.5, 13.4, 52.6, 13.5)

    def test_needs_two_coordinates(self):
        client = _client(lambda request: httpx.Response(200, json=OSRM_OK))
        with pytest.raises(ValueError):
            client.route([(52.5, 13.4)])


class TestLegRoutingService:
    @pytest.fixture
    def route(self, make_stop, make_route):
        route = make_route([
            make_stop("A", 0, lat=52.5, lon=13.4),
            make_stop("B", 1, lat=52.6, lon=13.5),
            make_stop("C", 2),
        ])
        for leg in route.legs:
            leg.needs_routing = True
        return route

    def test_pending_legs_are_filled(self, route):
        service = LegRoutingService(_client(lambda request: httpx.Response(200, json=OSRM_OK)))
        result = service.refresh_legs(route)

        leg = route.find_leg("A", "B")
        assert result.refreshed == [leg.id]
        assert leg.duration_seconds == 987
        assert leg.distance_meters == 12346
        assert leg.needs_routing is False
        assert leg.calculated_at is not None

    def test_legs_without_coordinates_are_skipped(self, route):
        service = LegRoutingService(_client(lambda request: httpx.Response(200, json=OSRM_OK)))
        result = service.refresh_legs(route)

        leg = route.find_leg("B", "C")
        assert result.skipped == [leg.id]
        assert leg.needs_routing is True

    def test_routed_legs_are_left_alone_unless_forced(self, route):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json=OSRM_OK)

        service = LegRoutingService(_client(handler))
        route.find_leg("A", "B").needs_routing = False

        assert service.refresh_legs(route).refreshed == []
        assert service.refresh_legs(route, force=True).refreshed == [route.find_leg("A", "B").id]
        assert len(calls) == 1

    def test_failures_are_collected(self, route):
        service = LegRoutingService(_client(lambda request: httpx.Response(503)))
        result = service.refresh_legs(route)

        leg = route.find_leg("A", "B")
        assert result.has_failures
        assert result.failed == [leg.id]
        assert len(result.errors) == 1
        assert leg.needs_routing is True

    def test_fail_fast_raises(self, route):
        service = LegRoutingService(_client(lambda request: httpx.Response(503)))
        with pytest.raises(RoutingProviderError):
            service.refresh_legs(route, fail_fast=True)
