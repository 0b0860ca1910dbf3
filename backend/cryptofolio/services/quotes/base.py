# backend/cryptofolio/services/quotes/base.py
"""
Abstract interface for exchange-rate quote clients.

A quote client turns a (crypto currency, fiat currency) pair into an
ExchangeRate. The base class owns the behaviour every provider shares:

- Empty currency short-circuit (returns None, no network call)
- Retry with exponential backoff for ConnectionFailureError and
  ProviderServerError only
- Circuit breaker around each attempt

Subclasses implement a single attempt in _fetch_rate() and classify
failures into the QuoteError family.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Awaitable, Callable, TypeVar

from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log,
)

from cryptofolio.models import CurrencyCode
from cryptofolio.services.circuit_breaker import CircuitBreaker
from cryptofolio.services.constants import DEFAULT_QUOTE_CURRENCY, ZERO
from cryptofolio.services.exceptions import (
    ConnectionFailureError,
    ProviderServerError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class ExchangeRate:
    """
    Spot price of one unit of a crypto currency in a fiat currency.

    Immutable once created; cached instances are shared between requests.

    Attributes:
        base_currency: Crypto currency being priced
        quote_currency: Fiat currency of the price (e.g., "USD")
        rate: Price of one unit, always positive
        observed_at: When the provider observed the rate
    """
    base_currency: CurrencyCode
    quote_currency: str
    rate: Decimal
    observed_at: datetime

    def __post_init__(self) -> None:
        if not self.quote_currency:
            raise ValueError("quote_currency is required")
        if not self.rate.is_finite() or self.rate <= ZERO:
            raise ValueError(f"rate must be a positive number, got {self.rate}")


class RateQuoteClient(ABC):
    """
    Base class for exchange-rate providers.

    Retry configuration defaults to the class attributes below and can be
    overridden per instance (tests pass zero backoff).

    Retryable Exceptions:
        - ConnectionFailureError: DNS, TCP, TLS failures and timeouts
        - ProviderServerError: provider answered 5xx

    Non-Retryable Exceptions:
        - ProviderClientError, TooManyRedirectsError, MalformedResponseError
        - CircuitBreakerOpen
    """

    MAX_RETRY_ATTEMPTS: int = 3
    RETRY_MIN_WAIT: float = 0.5
    RETRY_MAX_WAIT: float = 4.0
    RETRY_MULTIPLIER: float = 0.5

    def __init__(
        self,
        circuit_breaker: CircuitBreaker | None = None,
        max_attempts: int | None = None,
        backoff_min: float | None = None,
        backoff_max: float | None = None,
    ) -> None:
        self._circuit_breaker = circuit_breaker
        self._max_attempts = max_attempts or self.MAX_RETRY_ATTEMPTS
        self._backoff_min = self.RETRY_MIN_WAIT if backoff_min is None else backoff_min
        self._backoff_max = self.RETRY_MAX_WAIT if backoff_max is None else backoff_max

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider identifier used in logs and errors."""
        ...

    @property
    def circuit_breaker(self) -> CircuitBreaker | None:
        return self._circuit_breaker

    async def get_rate(
        self,
        base_currency: CurrencyCode | int | None,
        quote_currency: str = DEFAULT_QUOTE_CURRENCY,
    ) -> ExchangeRate | None:
        """
        Fetch the current rate for a currency pair.

        Args:
            base_currency: Crypto currency to price. None or "" skips the
                lookup and returns None.
            quote_currency: Fiat currency code

        Returns:
            ExchangeRate, or None when no base currency was given

        Raises:
            UnknownCurrencyError: If base_currency is not a known code
            QuoteError: Classified provider failure (after retries)
            CircuitBreakerOpen: If the provider breaker is open
        """
        if base_currency is None or base_currency == "":
            logger.debug("Empty base currency, skipping quote lookup")
            return None

        currency = CurrencyCode.from_value(base_currency)
        quote = quote_currency.upper().strip()

        return await self._execute_with_retry(self._guarded_fetch, currency, quote)

    # =========================================================================
    # ABSTRACT METHODS
    # =========================================================================

    @abstractmethod
    async def _fetch_rate(self, base_currency: CurrencyCode, quote_currency: str) -> ExchangeRate:
        """
        Perform one outbound lookup.

        Must raise a QuoteError subclass for every failure so the retry
        policy can tell transient and permanent failures apart.
        """
        ...

    # =========================================================================
    # RETRY AND CIRCUIT BREAKER
    # =========================================================================

    async def _guarded_fetch(self, base_currency: CurrencyCode, quote_currency: str) -> ExchangeRate:
        if self._circuit_breaker is None:
            return await self._fetch_rate(base_currency, quote_currency)

        async with self._circuit_breaker:
            return await self._fetch_rate(base_currency, quote_currency)

    async def _execute_with_retry(
            self,
            func: Callable[..., Awaitable[T]],
            *args: Any,
            **kwargs: Any,
    ) -> T:
        """
        Await func with retry logic for transient failures.

        Backoff sleeps are asyncio sleeps, so cancelling the caller also
        cancels a pending retry.

        Raises:
            The last exception if all attempts fail
        """

        @retry(
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_exponential(
                multiplier=self.RETRY_MULTIPLIER,
                min=self._backoff_min,
                max=self._backoff_max,
            ),
            retry=retry_if_exception_type((ConnectionFailureError, ProviderServerError)),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        async def _inner() -> T:
            return await func(*args, **kwargs)

        return await _inner()
