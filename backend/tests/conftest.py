# backend/tests/conftest.py
"""
Pytest configuration and fixtures.

This module provides shared fixtures for all tests:
- Test environment variables (set before any cryptofolio import)
- Database session fixtures (in-memory SQLite)
- A stub quote client with call counting
- Sample data factories
"""

import asyncio
import os
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterator

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("APP_NAME", "Test App")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from cryptofolio.models import Asset, Base, CurrencyCode, User
from cryptofolio.services.quotes import ExchangeRate, RateQuoteClient
from cryptofolio.services.user_service import generate_api_token

BTC_RATE = Decimal("18035.708")
ETH_RATE = Decimal("1250.25")
IOTA_RATE = Decimal("0.2875")


# =============================================================================
# DATABASE FIXTURES
# =============================================================================

@pytest.fixture(scope="function")
def db_engine():
    """Create an in-memory SQLite database engine for testing."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)


@pytest.fixture(scope="function")
def db(db_engine) -> Iterator[Session]:
    """Create a database session for testing."""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


# =============================================================================
# STUB QUOTE CLIENT
# =============================================================================

class StubQuoteClient(RateQuoteClient):
    """
    In-memory RateQuoteClient for testing.

    Serves configured rates, raises configured errors and counts the
    lookups that reached it (after the empty-currency short-circuit).
    An optional delay keeps lookups in flight so concurrency can be
    observed.
    """

    def __init__(self, rates: dict[CurrencyCode, Decimal] | None = None, delay: float = 0.0):
        super().__init__(max_attempts=1, backoff_min=0, backoff_max=0)
        self._rates: dict[CurrencyCode, Decimal] = dict(rates or {})
        self._errors: dict[CurrencyCode, Exception] = {}
        self.delay = delay
        self.calls: list[CurrencyCode] = []
        self.cancelled: list[CurrencyCode] = []

    @property
    def name(self) -> str:
        return "stub"

    def set_rate(self, currency: CurrencyCode, rate: Decimal | str) -> None:
        self._rates[currency] = Decimal(str(rate))

    def set_error(self, currency: CurrencyCode, error: Exception) -> None:
        self._errors[currency] = error

    @property
    def call_count(self) -> int:
        return len(self.calls)

    def calls_for(self, currency: CurrencyCode) -> int:
        return self.calls.count(currency)

    async def _fetch_rate(self, base_currency: CurrencyCode, quote_currency: str) -> ExchangeRate:
        self.calls.append(base_currency)
        if self.delay:
            try:
                await asyncio.sleep(self.delay)
            except asyncio.CancelledError:
                self.cancelled.append(base_currency)
                raise

        if base_currency in self._errors:
            raise self._errors[base_currency]

        if base_currency not in self._rates:
            raise AssertionError(f"No stub rate configured for {base_currency.ticker}")

        return make_rate(base_currency, self._rates[base_currency], quote_currency)


@pytest.fixture
def stub_client() -> StubQuoteClient:
    """Stub client with rates for every supported currency."""
    return StubQuoteClient({
        CurrencyCode.BTC: BTC_RATE,
        CurrencyCode.ETH: ETH_RATE,
        CurrencyCode.IOTA: IOTA_RATE,
    })


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# =============================================================================
# SAMPLE DATA FACTORIES
# =============================================================================

def make_rate(
        currency: CurrencyCode = CurrencyCode.BTC,
        rate: Decimal | str = BTC_RATE,
        quote_currency: str = "USD",
) -> ExchangeRate:
    """Factory function for ExchangeRate value objects."""
    return ExchangeRate(
        base_currency=currency,
        quote_currency=quote_currency,
        rate=Decimal(str(rate)),
        observed_at=datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc),
    )


class AssetStub:
    """Plain object satisfying AssetLike, for tests without a database."""

    def __init__(self, id: int, currency: int, amount: Decimal | str):
        self.id = id
        self.currency = currency
        self.amount = Decimal(str(amount))


def create_user(
        db: Session,
        email: str = "test@example.com",
        hashed_password: str = "hashed_password",
        name: str = "Test",
        surname: str | None = "User",
) -> User:
    """Factory function for creating User entities in the database."""
    user = User(
        token=generate_api_token(),
        email=email,
        hashed_password=hashed_password,
        name=name,
        surname=surname,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def create_asset(
        db: Session,
        user: User,
        label: str = "Cold wallet",
        currency: int = CurrencyCode.BTC,
        amount: Decimal | str = "1.99",
) -> Asset:
    """Factory function for creating Asset entities in the database."""
    asset = Asset(
        user_id=user.id,
        label=label,
        currency=int(currency),
        amount=Decimal(str(amount)),
    )
    db.add(asset)
    db.commit()
    db.refresh(asset)
    return asset


@pytest.fixture
def sample_user(db: Session) -> User:
    """Provide a sample User for tests."""
    return create_user(db)
