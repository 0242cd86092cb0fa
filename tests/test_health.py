"""Tests for health endpoints."""

from fastapi.testclient import TestClient


def test_health_endpoint(test_client: TestClient) -> None:
    """Test the basic health endpoint."""
    response = test_client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert "version" in data
    assert data["components"]["progress_store"] == "memory"
    assert data["components"]["llm"] == "stub"
    assert data["active_pipelines"] == 0


def test_readiness_endpoint(test_client: TestClient) -> None:
    """Test the readiness probe against the in-memory backends."""
    response = test_client.get("/health/ready")

    assert response.status_code == 200
    data = response.json()
    assert data == {"ready": True, "store": True, "notifier": True, "llm": True}


def test_readiness_reports_degraded_backend(test_client: TestClient, monkeypatch) -> None:
    """A failing component check turns readiness into a 503."""
    notifier = test_client.app.state.context.notifier
    monkeypatch.setattr(notifier, "health_check", lambda: False)

    response = test_client.get("/health/ready")

    assert response.status_code == 503
    assert response.json()["notifier"] is False
    assert response.json()["ready"] is False


def test_liveness_endpoint(test_client: TestClient) -> None:
    """Test the liveness probe endpoint."""
    response = test_client.get("/health/live")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "alive"


def test_root_endpoint(test_client: TestClient) -> None:
    """Test the root endpoint."""
    response = test_client.get("/")

    assert response.status_code == 200
    data = response.json()
    assert data["name"] == "DreamCut"
    assert "version" in data
    assert "docs" in data
