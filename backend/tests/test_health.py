# tests/test_health.py
"""
Tests for the root and health check endpoints.
"""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from cryptofolio.database import get_db
from cryptofolio.main import app


@pytest.fixture
def client(db: Session):
    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()


class TestHealthEndpoints:

    def test_root(self, client):
        """Should return basic app info."""
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["docs"] == "/docs"

    def test_health_reports_database_and_provider(self, client):
        """Should report both checks as healthy after startup."""
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["checks"]["database"]["status"] == "healthy"
        assert data["checks"]["quote_provider"]["circuit_breaker_state"] == "closed"

    def test_health_degraded_when_breaker_open(self, client):
        """Should stay 200 but report degraded while the provider breaker is open."""
        breaker = app.state.quote_breaker
        breaker.force_open()
        try:
            response = client.get("/health")
        finally:
            breaker.reset()

        assert response.status_code == 200
        assert response.json()["status"] == "degraded"
        assert response.json()["checks"]["quote_provider"]["status"] == "unhealthy"

    def test_liveness(self, client):
        """Should always answer alive."""
        assert client.get("/health/live").json() == {"status": "alive"}

    def test_readiness(self, client):
        """Should be ready while the database answers."""
        response = client.get("/health/ready")

        assert response.status_code == 200
        assert response.json() == {"status": "ready"}
