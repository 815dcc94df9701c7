"""Tests for health endpoints"""
from fastapi.testclient import TestClient

from snapfeed.api.deps import get_session_registry
from snapfeed.main import app


def test_health(client: TestClient):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_liveness(client: TestClient):
    response = client.get("/health/live")
    assert response.status_code == 200
    assert response.json()["status"] == "alive"


def test_readiness(client: TestClient):
    response = client.get("/health/ready")
    assert response.status_code == 200
    assert response.json()["checks"]["database"] is True
    assert response.json()["checks"]["session_registry"] is True


class _DownRegistry:
    def ping(self) -> bool:
        return False


def test_readiness_with_registry_down(client: TestClient):
    app.dependency_overrides[get_session_registry] = lambda: _DownRegistry()

    response = client.get("/health/ready")

    assert response.status_code == 503
    assert response.json()["status"] == "unhealthy"


def test_root(client: TestClient):
    assert client.get("/").json()["service"] == "SnapFeed"
