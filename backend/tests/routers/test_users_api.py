# tests/routers/test_users_api.py
"""
Integration tests for User API endpoints.

These tests verify:
- POST /users (Register, token returned once)
- GET /users/me (Profile with valued assets)
- PATCH /users/me (Profile update)
- DELETE /users/me (Delete with assets)
- Token authentication (header, query parameter, 401 responses)
"""

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from cryptofolio.database import get_db
from cryptofolio.dependencies import get_valuation_engine
from cryptofolio.main import app
from cryptofolio.models import Asset, CurrencyCode, User
from cryptofolio.services.password import PasswordService
from cryptofolio.services.quotes import RateCache
from cryptofolio.services.valuation import ValuationEngine
from tests.conftest import StubQuoteClient, create_asset, create_user


# =============================================================================
# TEST CLIENT SETUP
# =============================================================================

@pytest.fixture(scope="function")
def client(db: Session, stub_client: StubQuoteClient) -> TestClient:
    """TestClient with the test database and a stubbed valuation engine."""
    engine = ValuationEngine(quote_client=stub_client, rate_cache=RateCache(ttl_seconds=45))

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_valuation_engine] = lambda: engine

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()


def auth_headers(user: User) -> dict[str, str]:
    return {"X-API-Token": user.token}


# =============================================================================
# REGISTER
# =============================================================================

class TestRegister:
    """Tests for POST /users."""

    def test_register_success(self, client, db):
        """Should create the user and return the token once."""
        response = client.post(
            "/users",
            json={
                "email": "Satoshi@Example.com",
                "password": "correct-horse",
                "name": "Satoshi",
                "surname": "Nakamoto",
            },
        )

        assert response.status_code == 201
        data = response.json()
        assert data["email"] == "satoshi@example.com"
        assert data["name"] == "Satoshi"
        assert data["token"]
        assert "hashed_password" not in data

        user = db.get(User, data["id"])
        assert user.token == data["token"]
        assert PasswordService.verify_password("correct-horse", user.hashed_password)

    def test_registered_token_authenticates(self, client):
        """Should accept the issued token on the next request."""
        token = client.post(
            "/users",
            json={"email": "new@example.com", "password": "password123", "name": "New"},
        ).json()["token"]

        response = client.get("/users/me", headers={"X-API-Token": token})

        assert response.status_code == 200
        assert response.json()["email"] == "new@example.com"

    def test_register_duplicate_email(self, client, db):
        """Should answer 409 for an email that is taken."""
        create_user(db, email="taken@example.com")

        response = client.post(
            "/users",
            json={"email": "taken@example.com", "password": "password123", "name": "Again"},
        )

        assert response.status_code == 409
        assert response.json()["error"] == "UserExistsError"

    @pytest.mark.parametrize("payload", [
        {"email": "not-an-email", "password": "password123", "name": "A"},
        {"email": "a@example.com", "password": "short", "name": "A"},
        {"email": "a@example.com", "password": "password123"},
        {"email": "a@example.com", "password": "password123", "name": "   "},
    ])
    def test_register_invalid_payload(self, client, payload):
        """Should reject invalid registrations with 422."""
        response = client.post("/users", json=payload)

        assert response.status_code == 422
        assert response.json()["details"]


# =============================================================================
# AUTHENTICATION
# =============================================================================

class TestTokenAuthentication:
    """Tests for resolving the API token."""

    def test_missing_token(self, client):
        """Should answer 401 with WWW-Authenticate when no token is sent."""
        response = client.get("/users/me")

        assert response.status_code == 401
        assert response.json()["error"] == "UnauthorizedError"
        assert response.headers["WWW-Authenticate"] == "X-API-Token"

    def test_unknown_token(self, client):
        """Should answer 401 for a token nobody holds."""
        response = client.get("/users/me", headers={"X-API-Token": "00000000-0000-4000-8000-000000000000"})

        assert response.status_code == 401
        assert response.json()["error"] == "UserNotFoundError"

    def test_query_parameter_token(self, client, sample_user):
        """Should accept ?token= when no header is sent."""
        response = client.get("/users/me", params={"token": sample_user.token})

        assert response.status_code == 200
        assert response.json()["id"] == sample_user.id

    def test_header_wins_over_query(self, client, db, sample_user):
        """Should use the header when both are sent."""
        other = create_user(db, email="other@example.com")

        response = client.get(
            "/users/me",
            params={"token": other.token},
            headers=auth_headers(sample_user),
        )

        assert response.json()["id"] == sample_user.id


# =============================================================================
# PROFILE
# =============================================================================

class TestReadMe:
    """Tests for GET /users/me."""

    def test_profile_with_valued_assets(self, client, db, sample_user):
        """Should include each asset with its value and per-currency totals."""
        create_asset(db, sample_user, amount="1.99")
        create_asset(db, sample_user, currency=CurrencyCode.ETH, amount="2")

        response = client.get("/users/me", headers=auth_headers(sample_user))

        assert response.status_code == 200
        data = response.json()
        assert data["email"] == sample_user.email
        assert "token" not in data
        assert [a["display_value"] for a in data["assets"]] == ["35891.059 USD", "2500.500 USD"]
        assert data["total_assets"] == {"BTC": "35891.059 USD", "ETH": "2500.500 USD"}
        assert Decimal(data["total_value_in_quote"]) == Decimal("38391.559")

    def test_profile_without_assets(self, client, sample_user):
        """Should answer with an empty asset list."""
        response = client.get("/users/me", headers=auth_headers(sample_user))

        data = response.json()
        assert data["assets"] == []
        assert data["total_assets"] == {}


class TestUpdateMe:
    """Tests for PATCH /users/me."""

    def test_update_name(self, client, sample_user):
        """Should change only the sent fields."""
        response = client.patch(
            "/users/me",
            json={"name": "Hal"},
            headers=auth_headers(sample_user),
        )

        assert response.status_code == 200
        assert response.json()["name"] == "Hal"
        assert response.json()["surname"] == "User"

    def test_update_password(self, client, db, sample_user):
        """Should store a new password hash."""
        response = client.patch(
            "/users/me",
            json={"password": "brand-new-password"},
            headers=auth_headers(sample_user),
        )

        assert response.status_code == 200
        db.refresh(sample_user)
        assert PasswordService.verify_password("brand-new-password", sample_user.hashed_password)

    def test_update_email_conflict(self, client, db, sample_user):
        """Should answer 409 for another user's email."""
        create_user(db, email="other@example.com")

        response = client.patch(
            "/users/me",
            json={"email": "other@example.com"},
            headers=auth_headers(sample_user),
        )

        assert response.status_code == 409


class TestDeleteMe:
    """Tests for DELETE /users/me."""

    def test_delete_user_and_assets(self, client, db, sample_user):
        """Should delete the user together with their assets."""
        create_asset(db, sample_user)
        user_id = sample_user.id
        headers = auth_headers(sample_user)

        response = client.delete("/users/me", headers=headers)

        assert response.status_code == 204
        assert db.query(Asset).filter(Asset.user_id == user_id).count() == 0
        assert client.get("/users/me", headers=headers).status_code == 401
