"""Integration tests for health check endpoints."""

from unittest.mock import patch

from fastapi.testclient import TestClient
from postgrest.exceptions import APIError as PostgrestAPIError

from tests.fakes import FakeSupabase


class TestHealthEndpoint:
    """Tests for /health endpoint."""

    def test_health_returns_200(self, client: TestClient) -> None:
        """Test that /health endpoint returns 200 status."""
        response = client.get("/health")
        assert response.status_code == 200

    def test_health_returns_healthy_status(self, client: TestClient) -> None:
        response = client.get("/health")
        data = response.json()

        assert data["status"] == "healthy"
        assert data["timestamp"] is not None

    def test_health_does_not_touch_database(self, client: TestClient, fake_db: FakeSupabase) -> None:
        client.get("/health")

        assert fake_db.executed == []


class TestReadinessEndpoint:
    """Tests for /health/ready endpoint."""

    def test_readiness_returns_healthy_with_database_check(self, client: TestClient) -> None:
        response = client.get("/health/ready")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        db_check = next(c for c in data["checks"] if c["name"] == "database")
        assert db_check["healthy"] is True
        assert db_check["latency_ms"] is not None

    def test_readiness_returns_503_when_database_unhealthy(self, client: TestClient, fake_db: FakeSupabase) -> None:
        """Test that /health/ready returns 503 when the orders table cannot be read."""
        fake_db.fail_next("orders", "select", PostgrestAPIError({"code": "08006", "message": "Connection failed"}))

        response = client.get("/health/ready")

        assert response.status_code == 503
        data = response.json()
        assert data["status"] == "unhealthy"
        assert "Connection failed" in data["checks"][0]["error"]


class TestErrorResponseSchema:
    """Tests for error response schema compliance."""

    def test_unexpected_error_returns_500_envelope(self, client: TestClient) -> None:
        """Test that an unhandled exception is wrapped by the error middleware."""
        with patch("drip_checkout.api.routes.health.check_database_connection", side_effect=RuntimeError("boom")):
            response = client.get("/health/ready")

        assert response.status_code == 500
        data = response.json()
        assert data["error"] == "internal_error"
        assert data["message"] == "An unexpected error occurred"
        assert "timestamp" in data
        assert "boom" not in response.text

    def test_request_id_is_echoed(self, client: TestClient) -> None:
        response = client.post("/api/pay", json={}, headers={"X-Request-ID": "req-123"})

        assert response.status_code == 400
        assert response.json()["request_id"] == "req-123"
