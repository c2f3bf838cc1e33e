"""Tests for health endpoints."""

from fastapi.testclient import TestClient

from src.main import app


def test_liveness(client: TestClient) -> None:
    """Test the liveness endpoint."""
    response = client.get("/health/live")
    assert response.status_code == 200
    assert response.json() == {"status": "alive"}


def test_readiness_without_database(client: TestClient) -> None:
    """Readiness reports degraded while the progress service is missing."""
    response = client.get("/health/ready")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "degraded"
    assert data["database"] is False
    assert "environment" in data
    assert "debug" in data


def test_readiness_with_database(client: TestClient, service) -> None:
    app.state.progress_service = service

    response = client.get("/health/ready")

    assert response.json()["status"] == "ready"
    assert response.json()["database"] is True


def test_health(client: TestClient) -> None:
    """Test the general health endpoint."""
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["app_name"] == "learnpath"
    assert "version" in data
    assert "environment" in data


def test_root(client: TestClient) -> None:
    """Test the root endpoint."""
    response = client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert "message" in data
    assert "LearnPath" in data["message"]
    assert "version" in data


def test_request_id_header(client: TestClient) -> None:
    response = client.get("/health/live")
    assert response.headers.get("X-Request-ID")
