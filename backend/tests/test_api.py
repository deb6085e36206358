"""
ArchiRoutes Backend: API Endpoint Tests
========================================

What:  HTTP behavior of the buildings, routing and health endpoints.
How:   httpx.AsyncClient over ASGITransport; the duplicate service is
       swapped through app.dependency_overrides, routing uses the
       straight-line backend installed by the test_client fixture.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from app.exceptions import LookupFailureError
from app.main import app
from app.routes.buildings import get_duplicate_service
from app.services.duplicate_service import DuplicateDetectionService


@pytest.fixture
def override_duplicates(mock_store):
    app.dependency_overrides[get_duplicate_service] = lambda: DuplicateDetectionService(mock_store)
    yield mock_store
    app.dependency_overrides.pop(get_duplicate_service, None)


class TestBuildingEndpoints:

    @pytest.mark.asyncio
    async def test_duplicate_check(self, test_client, override_duplicates):
        override_duplicates.check_building_duplicates.return_value = [{
            "duplicate_id": "b1",
            "duplicate_name": "Reichstag",
            "duplicate_address": None,
            "distance_meters": 15.0,
            "similarity_score": None,
            "match_type": "exact_location",
            "confidence": "high",
        }]

        response = await test_client.post(
            "/api/buildings/duplicates/check",
            json={"name": "Reichstag", "city": "Berlin", "latitude": 52.5186, "longitude": 13.3762},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["is_duplicate"] is True
        assert body["highest_confidence"] == "high"
        assert body["duplicates"][0]["id"] == "b1"
        assert response.headers["X-Request-ID"]

    @pytest.mark.asyncio
    async def test_duplicate_check_fails_open(self, test_client, override_duplicates):
        override_duplicates.check_building_duplicates.side_effect = LookupFailureError("down")

        response = await test_client.post(
            "/api/buildings/duplicates/check",
            json={"name": "Reichstag", "city": "Berlin", "latitude": 52.5186, "longitude": 13.3762},
        )

        assert response.status_code == 200
        assert response.json() == {"is_duplicate": False, "duplicates": [], "highest_confidence": "low"}

    @pytest.mark.asyncio
    async def test_duplicate_check_rejects_bad_latitude(self, test_client, override_duplicates):
        response = await test_client.post(
            "/api/buildings/duplicates/check",
            json={"name": "Reichstag", "city": "Berlin", "latitude": 123.0, "longitude": 13.3762},
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_similar_search(self, test_client, override_duplicates):
        override_duplicates.search_buildings.return_value = [
            {"id": "b1", "name": "Reichstag", "city": "Berlin",
             "address": None, "latitude": 52.5186, "longitude": 13.3762},
        ]

        response = await test_client.get(
            "/api/buildings/similar", params={"name": "Reich", "city": "Berlin", "limit": 3}
        )

        assert response.status_code == 200
        buildings = response.json()["buildings"]
        assert buildings[0]["match_type"] == "similar_name"
        assert override_duplicates.search_buildings.await_args.kwargs["limit"] == 3

    @pytest.mark.asyncio
    async def test_nearby(self, test_client, override_duplicates):
        override_duplicates.find_nearby_buildings.return_value = [
            {"id": "b1", "name": "Reichstag", "city": "Berlin", "address": None,
             "latitude": 52.5186, "longitude": 13.3762, "distance_meters": 12.0},
        ]

        response = await test_client.get(
            "/api/buildings/nearby", params={"latitude": 52.5186, "longitude": 13.3762}
        )

        assert response.status_code == 200
        assert response.json()["buildings"][0]["confidence"] == "high"


class TestRoutingEndpoints:

    @pytest.mark.asyncio
    async def test_build_route(self, test_client):
        response = await test_client.post(
            "/api/routes/build",
            json={
                "points": [{"latitude": 0, "longitude": 0}, {"latitude": 0, "longitude": 1}],
                "options": {"transport_mode": "walking"},
            },
        )

        assert response.status_code == 200
        body = response.json()
        assert body["distance_meters"] == pytest.approx(111_195, abs=1)
        assert body["instructions"][0]["way_points"] == [0, 1]

    @pytest.mark.asyncio
    async def test_single_point_is_400(self, test_client):
        response = await test_client.post(
            "/api/routes/build", json={"points": [{"latitude": 0, "longitude": 0}]}
        )

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "invalid_input"
        assert body["message"] == "At least 2 points required to build a route"

    @pytest.mark.asyncio
    async def test_optimize_keeps_endpoints(self, test_client):
        points = [
            {"latitude": 52.5163, "longitude": 13.3777, "title": "start"},
            {"latitude": 52.5186, "longitude": 13.3762},
            {"latitude": 52.5169, "longitude": 13.4019},
            {"latitude": 52.5219, "longitude": 13.4132, "title": "end"},
        ]

        response = await test_client.post("/api/routes/optimize", json={"points": points})

        assert response.status_code == 200
        optimized = response.json()["optimized_points"]
        assert optimized[0]["title"] == "start"
        assert optimized[-1]["title"] == "end"
        assert len(optimized) == 4


class TestHealthEndpoint:

    @pytest.mark.asyncio
    async def test_healthy(self, test_client):
        engine = MagicMock()
        engine.connect.return_value.__aenter__.return_value = AsyncMock()

        with patch("app.routes.health.engine", engine):
            response = await test_client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["database"] == "connected"
        assert body["routing_provider"] == "straight_line"
        assert body["routing"] == "local"

    @pytest.mark.asyncio
    async def test_database_down(self, test_client):
        engine = MagicMock()
        engine.connect.return_value.__aenter__.side_effect = OperationalError(
            "SELECT 1", {}, Exception("connection refused")
        )

        with patch("app.routes.health.engine", engine):
            response = await test_client.get("/health")

        body = response.json()
        assert body["status"] == "unhealthy"
        assert body["database"] == "disconnected"
