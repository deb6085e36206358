"""
ArchiRoutes Backend: Provider Backend Tests (httpx.MockTransport)
==================================================================

What:  OpenRouteService and Mapbox backends against canned HTTP responses.
How:   Each backend gets an httpx.AsyncClient whose transport is a
       MockTransport handler, so no request leaves the process.

What we test:
    ✅ Request shape: URL, profile, auth, provider options
    ✅ Response mapping: geometry, summary, instruction spans and types
    ✅ Fallback to straight lines on HTTP errors, malformed payloads, timeouts
    ✅ Optimization order mapping and fallback to the original order
    ✅ Circuit breaker short-circuits the provider
    ❌ Real provider calls (need API keys and network)
"""

import asyncio
import json

import httpx
import pytest

from app.schemas.routing import RouteOptions, RoutePoint
from app.services.circuit_breaker import CircuitBreaker
from app.services.mapbox_service import MapboxBackend
from app.services.ors_service import OpenRouteServiceBackend
from app.services.routing_service import RoutingService
from app.services.straight_line import StraightLineBackend

GATE = [13.3777, 52.5163]
MIDWAY = [13.3770, 52.5175]
REICHSTAG = [13.3762, 52.5186]


@pytest.fixture
def two_points():
    return [
        RoutePoint(latitude=GATE[1], longitude=GATE[0]),
        RoutePoint(latitude=REICHSTAG[1], longitude=REICHSTAG[0]),
    ]


def ors_directions_payload(**overrides):
    properties = {
        "summary": {"distance": 300.5, "duration": 216.4},
        "segments": [
            {
                "steps": [
                    {"instruction": "Head north", "distance": 150.0, "duration": 108.0,
                     "type": 11, "way_points": [0, 1]},
                    {"instruction": "Turn left", "distance": 150.5, "duration": 108.4,
                     "type": 0, "way_points": [1, 2]},
                    {"instruction": "Arrive at Reichstag", "distance": 0.0, "duration": 0.0,
                     "type": 10, "way_points": [2, 2]},
                ]
            }
        ],
    }
    properties.update(overrides)
    return {
        "type": "FeatureCollection",
        "features": [
            {
                "type": "Feature",
                "geometry": {"type": "LineString", "coordinates": [GATE, MIDWAY, REICHSTAG]},
                "properties": properties,
            }
        ],
    }


def make_ors(client, threshold=5, timeout=1.0):
    return OpenRouteServiceBackend(
        api_key="test-key",
        http_client=client,
        fallback=StraightLineBackend(),
        timeout_seconds=timeout,
        circuit_breaker=CircuitBreaker(name="openrouteservice", failure_threshold=threshold),
    )


def make_mapbox(client):
    return MapboxBackend(
        access_token="pk.test",
        http_client=client,
        fallback=StraightLineBackend(),
        timeout_seconds=1.0,
    )


def is_straight_line(result, point_count):
    return (
        len(result.instructions) == 1
        and result.instructions[0].instruction.startswith("Follow ")
        and result.instructions[0].way_points == (0, point_count - 1)
    )


class TestOpenRouteServiceDirections:

    @pytest.mark.asyncio
    async def test_successful_route(self, make_http_client, two_points):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json=ors_directions_payload())

        backend = make_ors(make_http_client(handler))
        result = await backend.route(two_points, RouteOptions(transport_mode="walking"))

        request = requests[0]
        assert request.method == "POST"
        assert request.url.path == "/v2/directions/foot-walking/geojson"
        assert request.headers["Authorization"] == "test-key"
        assert json.loads(request.content)["coordinates"] == [GATE, REICHSTAG]

        assert result.distance_meters == 300.5
        assert result.duration_seconds == 216.4
        assert result.geometry.coordinates == [GATE, MIDWAY, REICHSTAG]
        assert [i.type for i in result.instructions] == ["depart", "left", "arrive"]
        assert result.instructions[1].way_points == (1, 2)
        assert backend.circuit_breaker.failure_count == 0

    @pytest.mark.asyncio
    async def test_driving_avoid_options(self, make_http_client, two_points):
        bodies = []

        def handler(request):
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json=ors_directions_payload())

        backend = make_ors(make_http_client(handler))
        await backend.route(
            two_points,
            RouteOptions(transport_mode="driving", avoid_tolls=True, avoid_ferries=True),
        )

        assert bodies[0]["options"]["avoid_features"] == ["tollways", "ferries"]

    @pytest.mark.asyncio
    async def test_prefer_green_for_walking(self, make_http_client, two_points):
        bodies = []

        def handler(request):
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json=ors_directions_payload())

        backend = make_ors(make_http_client(handler))
        await backend.route(two_points, RouteOptions(transport_mode="walking", prefer_green=True))

        assert bodies[0]["options"]["profile_params"]["weightings"]["green"] == 1.0

    @pytest.mark.asyncio
    async def test_public_transport_uses_walking_profile(self, make_http_client, two_points):
        paths = []

        def handler(request):
            paths.append(request.url.path)
            return httpx.Response(200, json=ors_directions_payload())

        backend = make_ors(make_http_client(handler))
        await backend.route(two_points, RouteOptions(transport_mode="public_transport"))

        assert paths == ["/v2/directions/foot-walking/geojson"]

    @pytest.mark.asyncio
    async def test_http_error_falls_back(self, make_http_client, two_points):
        backend = make_ors(make_http_client(lambda request: httpx.Response(503)))

        result = await backend.route(two_points, RouteOptions())

        assert is_straight_line(result, 2)
        assert result.geometry.coordinates == [GATE, REICHSTAG]
        assert backend.circuit_breaker.failure_count == 1

    @pytest.mark.asyncio
    async def test_undecodable_body_falls_back(self, make_http_client, two_points):
        backend = make_ors(make_http_client(lambda request: httpx.Response(200, content=b"<html>")))

        result = await backend.route(two_points, RouteOptions())

        assert is_straight_line(result, 2)

    @pytest.mark.asyncio
    async def test_null_properties_fall_back(self, make_http_client, two_points):
        payload = ors_directions_payload()
        payload["features"][0]["properties"] = None
        backend = make_ors(make_http_client(lambda request: httpx.Response(200, json=payload)))

        result = await RoutingService(backend).build_route(two_points)

        assert is_straight_line(result, 2)
        assert backend.circuit_breaker.failure_count == 1

    @pytest.mark.asyncio
    async def test_non_object_step_falls_back(self, make_http_client, two_points):
        payload = ors_directions_payload(segments=[{"steps": ["Head north"]}])
        backend = make_ors(make_http_client(lambda request: httpx.Response(200, json=payload)))

        result = await backend.route(two_points, RouteOptions())

        assert is_straight_line(result, 2)

    @pytest.mark.asyncio
    async def test_out_of_range_way_points_fall_back(self, make_http_client, two_points):
        payload = ors_directions_payload(
            segments=[{"steps": [{"instruction": "Go", "distance": 1, "duration": 1,
                                  "type": 11, "way_points": [0, 7]}]}]
        )
        backend = make_ors(make_http_client(lambda request: httpx.Response(200, json=payload)))

        result = await backend.route(two_points, RouteOptions())

        assert is_straight_line(result, 2)

    @pytest.mark.asyncio
    async def test_uncovered_geometry_falls_back(self, make_http_client, two_points):
        payload = ors_directions_payload(
            segments=[{"steps": [{"instruction": "Go", "distance": 1, "duration": 1,
                                  "type": 11, "way_points": [0, 1]}]}]
        )
        backend = make_ors(make_http_client(lambda request: httpx.Response(200, json=payload)))

        result = await backend.route(two_points, RouteOptions())

        assert is_straight_line(result, 2)

    @pytest.mark.asyncio
    async def test_missing_steps_get_one_instruction(self, make_http_client, two_points):
        payload = ors_directions_payload(segments=[])
        backend = make_ors(make_http_client(lambda request: httpx.Response(200, json=payload)))

        result = await backend.route(two_points, RouteOptions())

        assert result.distance_meters == 300.5
        assert len(result.instructions) == 1
        assert result.instructions[0].way_points == (0, 2)

    @pytest.mark.asyncio
    async def test_slow_provider_times_out(self, make_http_client, two_points):
        async def handler(request):
            await asyncio.sleep(1)
            return httpx.Response(200, json=ors_directions_payload())

        backend = make_ors(make_http_client(handler), timeout=0.05)
        result = await backend.route(two_points, RouteOptions())

        assert is_straight_line(result, 2)
        assert backend.circuit_breaker.failure_count == 1

    @pytest.mark.asyncio
    async def test_open_circuit_skips_provider(self, make_http_client, two_points):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(500)

        backend = make_ors(make_http_client(handler), threshold=1)
        await backend.route(two_points, RouteOptions())
        assert backend.status() == "circuit_open"

        result = await backend.route(two_points, RouteOptions())

        assert len(calls) == 1
        assert is_straight_line(result, 2)


class TestOpenRouteServiceOptimization:

    @pytest.mark.asyncio
    async def test_job_order_maps_to_point_indices(self, make_http_client, route_points):
        bodies = []

        def handler(request):
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={
                "code": 0,
                "routes": [{"steps": [
                    {"type": "start"},
                    {"type": "job", "job": 2},
                    {"type": "job", "job": 1},
                    {"type": "end"},
                ]}],
            })

        backend = make_ors(make_http_client(handler))
        order = await backend.optimize(route_points, RouteOptions())

        assert order == [0, 2, 1, 3]
        body = bodies[0]
        assert [job["id"] for job in body["jobs"]] == [1, 2]
        vehicle = body["vehicles"][0]
        assert vehicle["profile"] == "foot-walking"
        assert vehicle["start"] == [route_points[0].longitude, route_points[0].latitude]
        assert vehicle["end"] == [route_points[-1].longitude, route_points[-1].latitude]

    @pytest.mark.asyncio
    async def test_incomplete_order_keeps_original(self, make_http_client, route_points):
        payload = {"routes": [{"steps": [{"type": "job", "job": 2}, {"type": "job", "job": 2}]}]}
        backend = make_ors(make_http_client(lambda request: httpx.Response(200, json=payload)))

        assert await backend.optimize(route_points, RouteOptions()) == [0, 1, 2, 3]

    @pytest.mark.asyncio
    async def test_optimizer_error_end_to_end(self, make_http_client, route_points):
        """The optimizer fails, directions work: original order, provider route."""
        def handler(request):
            if request.url.path.startswith("/optimization"):
                return httpx.Response(500, json={"error": "internal"})
            coordinates = json.loads(request.content)["coordinates"]
            payload = ors_directions_payload(segments=[])
            payload["features"][0]["geometry"]["coordinates"] = coordinates
            return httpx.Response(200, json=payload)

        service = RoutingService(make_ors(make_http_client(handler)))
        optimized = await service.optimize_route(route_points, RouteOptions())

        assert optimized.optimized_points == route_points
        assert optimized.route.distance_meters == 300.5


class TestMapbox:

    @staticmethod
    def directions_payload(code="Ok"):
        return {
            "code": code,
            "routes": [{
                "distance": 310.0,
                "duration": 230.0,
                "geometry": {"type": "LineString", "coordinates": [GATE, MIDWAY, REICHSTAG]},
                "legs": [{"steps": [
                    {"distance": 310.0, "duration": 230.0,
                     "maneuver": {"type": "depart", "instruction": "Head north"},
                     "geometry": {"coordinates": [GATE, MIDWAY, REICHSTAG]}},
                    {"distance": 0.0, "duration": 0.0,
                     "maneuver": {"type": "arrive", "instruction": "You have arrived"},
                     "geometry": {"coordinates": [REICHSTAG, REICHSTAG]}},
                ]}],
            }],
        }

    @pytest.mark.asyncio
    async def test_directions_request_and_spans(self, make_http_client, two_points):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json=self.directions_payload())

        backend = make_mapbox(make_http_client(handler))
        result = await backend.route(two_points, RouteOptions(transport_mode="cycling"))

        request = requests[0]
        assert request.url.path.startswith("/directions/v5/mapbox/cycling/")
        assert request.url.params["access_token"] == "pk.test"
        assert request.url.params["geometries"] == "geojson"
        assert request.url.params["overview"] == "full"
        assert "exclude" not in request.url.params

        assert result.distance_meters == 310.0
        assert [i.way_points for i in result.instructions] == [(0, 2), (2, 2)]
        assert [i.type for i in result.instructions] == ["depart", "arrive"]

    @pytest.mark.asyncio
    async def test_driving_excludes(self, make_http_client, two_points):
        params = []

        def handler(request):
            params.append(request.url.params)
            return httpx.Response(200, json=self.directions_payload())

        backend = make_mapbox(make_http_client(handler))
        await backend.route(two_points, RouteOptions(transport_mode="driving", avoid_tolls=True))

        assert params[0]["exclude"] == "toll"

    @pytest.mark.asyncio
    async def test_no_route_code_falls_back(self, make_http_client, two_points):
        backend = make_mapbox(
            make_http_client(lambda request: httpx.Response(200, json=self.directions_payload("NoRoute")))
        )

        result = await backend.route(two_points, RouteOptions())

        assert is_straight_line(result, 2)

    @pytest.mark.asyncio
    async def test_null_body_falls_back(self, make_http_client, two_points):
        backend = make_mapbox(make_http_client(lambda request: httpx.Response(200, content=b"null")))

        result = await RoutingService(backend).build_route(two_points)

        assert is_straight_line(result, 2)
        assert backend.circuit_breaker.failure_count == 1

    @pytest.mark.asyncio
    async def test_null_maneuver_falls_back(self, make_http_client, two_points):
        payload = self.directions_payload()
        payload["routes"][0]["legs"][0]["steps"][0]["maneuver"] = None
        backend = make_mapbox(make_http_client(lambda request: httpx.Response(200, json=payload)))

        result = await backend.route(two_points, RouteOptions())

        assert is_straight_line(result, 2)

    @pytest.mark.asyncio
    async def test_null_optimization_body_keeps_original(self, make_http_client, route_points):
        backend = make_mapbox(make_http_client(lambda request: httpx.Response(200, content=b"null")))

        assert await backend.optimize(route_points, RouteOptions()) == [0, 1, 2, 3]

    @pytest.mark.asyncio
    async def test_too_many_waypoints_skip_provider(self, make_http_client):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json=self.directions_payload())

        points = [RoutePoint(latitude=52.5 + i * 0.001, longitude=13.4) for i in range(26)]
        backend = make_mapbox(make_http_client(handler))

        result = await backend.route(points, RouteOptions())

        assert calls == []
        assert is_straight_line(result, 26)

    @pytest.mark.asyncio
    async def test_optimization_waypoint_index(self, make_http_client, route_points):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={
                "code": "Ok",
                "waypoints": [
                    {"waypoint_index": 0},
                    {"waypoint_index": 2},
                    {"waypoint_index": 1},
                    {"waypoint_index": 3},
                ],
            })

        backend = make_mapbox(make_http_client(handler))
        order = await backend.optimize(route_points, RouteOptions())

        assert order == [0, 2, 1, 3]
        params = requests[0].url.params
        assert requests[0].url.path.startswith("/optimization/v1/mapbox/walking/")
        assert params["source"] == "first"
        assert params["destination"] == "last"
        assert params["roundtrip"] == "false"

    @pytest.mark.asyncio
    async def test_optimization_limit(self, make_http_client):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(500)

        points = [RoutePoint(latitude=52.5 + i * 0.001, longitude=13.4) for i in range(13)]
        backend = make_mapbox(make_http_client(handler))

        assert await backend.optimize(points, RouteOptions()) == list(range(13))
        assert calls == []
