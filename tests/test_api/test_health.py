"""Tests for the health endpoint and app-level behaviour."""

from unittest.mock import AsyncMock

from fastapi.testclient import TestClient

from dropfeed.api.app import create_app
from dropfeed.api.dependencies import get_database, get_redis_client


def _make_client(db_healthy: bool = True, redis_healthy: bool = True) -> TestClient:
    """Create a test client with configurable health states."""
    app = create_app()

    db = AsyncMock()
    db.health_check = AsyncMock(return_value=db_healthy)
    redis_client = AsyncMock()
    if redis_healthy:
        redis_client.ping = AsyncMock(return_value=True)
    else:
        redis_client.ping = AsyncMock(side_effect=ConnectionRefusedError("Connection refused"))

    app.dependency_overrides[get_database] = lambda: db
    app.dependency_overrides[get_redis_client] = lambda: redis_client
    return TestClient(app)


class TestHealth:
    def test_all_healthy(self):
        response = _make_client().get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["components"]["database"]["status"] == "healthy"
        assert data["components"]["redis"]["status"] == "healthy"

    def test_redis_down_is_degraded(self):
        data = _make_client(redis_healthy=False).get("/health").json()

        assert data["status"] == "degraded"
        assert data["components"]["redis"]["details"]["error"] == "Connection refused"

    def test_database_down_is_unhealthy(self):
        data = _make_client(db_healthy=False).get("/health").json()
        assert data["status"] == "unhealthy"

    def test_no_api_key_needed(self):
        assert _make_client().get("/health").status_code == 200


class TestApp:
    def test_root(self):
        data = _make_client().get("/").json()
        assert data["service"] == "dropfeed API"
        assert data["docs"] == "/docs"

    def test_request_id_echoed(self):
        response = _make_client().get("/health", headers={"X-Request-ID": "req-123"})
        assert response.headers["X-Request-ID"] == "req-123"

    def test_request_id_generated(self):
        response = _make_client().get("/health")
        assert len(response.headers["X-Request-ID"]) == 36
