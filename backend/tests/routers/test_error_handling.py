# tests/routers/test_error_handling.py
"""
Integration tests for error handling across the API.

These tests verify:
- Consistent error response format (ErrorDetail schema)
- Status codes for each quote and valuation failure
- Retry-After on an open circuit breaker
- Correlation ID headers on error responses
"""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from cryptofolio.database import get_db
from cryptofolio.dependencies import get_valuation_engine
from cryptofolio.main import app
from cryptofolio.models import CurrencyCode, User
from cryptofolio.services.circuit_breaker import CircuitBreakerOpen
from cryptofolio.services.exceptions import (
    ConnectionFailureError,
    MalformedResponseError,
    ProviderClientError,
    ProviderServerError,
    TooManyRedirectsError,
)
from cryptofolio.services.quotes import RateCache
from cryptofolio.services.valuation import ValuationEngine
from tests.conftest import StubQuoteClient, create_asset


# =============================================================================
# TEST CLIENT SETUP
# =============================================================================

@pytest.fixture(scope="function")
def engine_holder(stub_client: StubQuoteClient) -> dict:
    """Mutable slot so a test can swap the engine behind the override."""
    return {"engine": ValuationEngine(quote_client=stub_client, rate_cache=RateCache(ttl_seconds=45))}


@pytest.fixture(scope="function")
def client(db: Session, engine_holder: dict) -> TestClient:
    """TestClient with the test database and a stubbed valuation engine."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_valuation_engine] = lambda: engine_holder["engine"]

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()


def auth_headers(user: User) -> dict[str, str]:
    return {"X-API-Token": user.token}


def assert_error_format(response, error: str) -> dict:
    data = response.json()
    assert set(data) == {"error", "message", "details"}
    assert data["error"] == error
    assert data["message"]
    return data


# =============================================================================
# QUOTE PROVIDER FAILURES
# =============================================================================

class TestQuoteErrors:
    """Provider failures surface as 502/503 with provider details."""

    def test_provider_server_error(self, client, db, sample_user, stub_client):
        """Should answer 503 with the provider status after retries."""
        create_asset(db, sample_user)
        stub_client.set_error(CurrencyCode.BTC, ProviderServerError("BTC", "USD", "coinapi", 503))

        response = client.get("/assets", headers=auth_headers(sample_user))

        assert response.status_code == 503
        data = assert_error_format(response, "ProviderServerError")
        assert data["details"]["provider_status"] == 503
        assert data["details"]["provider"] == "coinapi"

    def test_connection_failure(self, client, db, sample_user, stub_client):
        """Should answer 503 when the provider is unreachable."""
        asset = create_asset(db, sample_user)
        stub_client.set_error(
            CurrencyCode.BTC,
            ConnectionFailureError("BTC", "USD", "coinapi", "connection refused"),
        )

        response = client.get(f"/assets/{asset.id}", headers=auth_headers(sample_user))

        assert response.status_code == 503
        data = assert_error_format(response, "ConnectionFailureError")
        assert data["details"]["asset_id"] == asset.id

    @pytest.mark.parametrize("error", [
        ProviderClientError("BTC", "USD", "coinapi", 401),
        TooManyRedirectsError("BTC", "USD", "coinapi"),
        MalformedResponseError("BTC", "USD", "coinapi", "rate missing"),
    ])
    def test_unusable_answers_are_bad_gateway(self, client, db, sample_user, stub_client, error):
        """Should answer 502 for rejected, looping or garbled answers."""
        create_asset(db, sample_user)
        stub_client.set_error(CurrencyCode.BTC, error)

        response = client.get("/assets/summary", headers=auth_headers(sample_user))

        assert response.status_code == 502
        assert_error_format(response, type(error).__name__)

    def test_circuit_breaker_open(self, client, db, sample_user, stub_client):
        """Should answer 503 with Retry-After rounded up."""
        create_asset(db, sample_user)
        stub_client.set_error(CurrencyCode.BTC, CircuitBreakerOpen("coinapi", 12.3))

        response = client.get("/assets", headers=auth_headers(sample_user))

        assert response.status_code == 503
        assert response.headers["Retry-After"] == "13"
        data = assert_error_format(response, "CircuitBreakerOpen")
        assert data["details"] == {"breaker_name": "coinapi", "retry_after": 13}

    def test_failure_in_one_currency_fails_listing(self, client, db, sample_user, stub_client):
        """Should not return a partial listing when one currency fails."""
        create_asset(db, sample_user, currency=CurrencyCode.BTC)
        create_asset(db, sample_user, currency=CurrencyCode.ETH)
        stub_client.set_error(CurrencyCode.ETH, ProviderServerError("ETH", "USD", "coinapi", 500))

        response = client.get("/assets", headers=auth_headers(sample_user))

        assert response.status_code == 503
        assert "data" not in response.json()


# =============================================================================
# VALUATION FAILURES
# =============================================================================

class TestValuationErrors:

    def test_unknown_stored_currency(self, client, db, sample_user):
        """Should answer 422 naming the asset with an unmapped currency code."""
        asset = create_asset(db, sample_user, currency=9)

        response = client.get(f"/assets/{asset.id}", headers=auth_headers(sample_user))

        assert response.status_code == 422
        data = assert_error_format(response, "UnknownCurrencyError")
        assert data["details"]["asset_id"] == asset.id

    def test_valuation_timeout(self, client, db, sample_user, engine_holder):
        """Should answer 504 when lookups exceed the time budget."""
        create_asset(db, sample_user)
        slow_client = StubQuoteClient({CurrencyCode.BTC: "18035.708"}, delay=5)
        engine_holder["engine"] = ValuationEngine(quote_client=slow_client, timeout_seconds=0.05)

        response = client.get("/assets", headers=auth_headers(sample_user))

        assert response.status_code == 504
        data = assert_error_format(response, "ValuationTimeoutError")
        assert data["details"] == {"timeout_seconds": 0.05}


# =============================================================================
# GENERIC ERRORS
# =============================================================================

class TestErrorFormat:

    def test_not_found_route(self, client):
        """Should use ErrorDetail for unknown routes."""
        response = client.get("/does-not-exist")

        assert response.status_code == 404
        assert_error_format(response, "NotFoundError")

    def test_method_not_allowed(self, client):
        """Should use ErrorDetail for unsupported methods."""
        response = client.post("/assets/summary", json={})

        assert response.status_code == 405
        assert_error_format(response, "MethodNotAllowedError")

    def test_request_validation_details(self, client, sample_user):
        """Should list the failing fields."""
        response = client.post(
            "/assets",
            json={"label": "", "currency": 1},
            headers=auth_headers(sample_user),
        )

        assert response.status_code == 422
        fields = {d["field"] for d in response.json()["details"]}
        assert "body.label" in fields
        assert "body.amount" in fields

    def test_error_response_has_correlation_id(self, client):
        """Should send X-Correlation-ID on error responses too."""
        response = client.get("/users/me", headers={"X-Correlation-ID": "trace-123"})

        assert response.status_code == 401
        assert response.headers["X-Correlation-ID"] == "trace-123"
