# backend/cryptofolio/services/quotes/coinapi.py
"""
CoinAPI exchange-rate client.

Request:
    GET {base_url}/{BASE}/{QUOTE}?apikey={key}

Response (200):
    {
        "time": "2024-01-15T10:30:00.0000000Z",
        "asset_id_base": "BTC",
        "asset_id_quote": "USD",
        "rate": 18035.708
    }

Failure classification:
    httpx.TransportError (DNS, connect, TLS, timeouts)  -> ConnectionFailureError
    httpx.TooManyRedirects / unresolved 3xx             -> TooManyRedirectsError
    5xx                                                 -> ProviderServerError
    4xx (unknown asset, bad key, quota exhausted)       -> ProviderClientError
    undecodable body, missing or non-positive rate      -> MalformedResponseError

The rate is parsed straight into Decimal from the JSON text, never via
float, so values like 18035.708 keep every digit.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

import httpx

from cryptofolio.models import CurrencyCode
from cryptofolio.services.circuit_breaker import CircuitBreaker
from cryptofolio.services.constants import QUOTE_PROVIDER_NAME
from cryptofolio.services.exceptions import (
    ConnectionFailureError,
    MalformedResponseError,
    ProviderClientError,
    ProviderServerError,
    TooManyRedirectsError,
)
from cryptofolio.services.quotes.base import ExchangeRate, RateQuoteClient

logger = logging.getLogger(__name__)


class CoinAPIQuoteClient(RateQuoteClient):
    """
    Quote client for the CoinAPI REST exchange-rate endpoint.

    The httpx.AsyncClient is injected and owned by the caller (the
    application lifespan), so connections are pooled across requests.

    Args:
        http_client: Shared async HTTP client
        base_url: Endpoint prefix, without trailing slash
        api_key: Sent as the `apikey` query parameter when set
        timeout: Per-request timeout in seconds
        circuit_breaker: Optional breaker wrapped around every attempt
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        base_url: str,
        api_key: str | None = None,
        timeout: float = 10.0,
        circuit_breaker: CircuitBreaker | None = None,
        max_attempts: int | None = None,
        backoff_min: float | None = None,
        backoff_max: float | None = None,
    ) -> None:
        super().__init__(
            circuit_breaker=circuit_breaker,
            max_attempts=max_attempts,
            backoff_min=backoff_min,
            backoff_max=backoff_max,
        )
        self._http = http_client
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout

        logger.info(
            f"CoinAPIQuoteClient initialized: base_url={self._base_url}, "
            f"timeout={timeout}s, max_attempts={self._max_attempts}"
        )

    @property
    def name(self) -> str:
        return QUOTE_PROVIDER_NAME

    # =========================================================================
    # SINGLE ATTEMPT
    # =========================================================================

    async def _fetch_rate(self, base_currency: CurrencyCode, quote_currency: str) -> ExchangeRate:
        ticker = base_currency.ticker
        url = f"{self._base_url}/{ticker}/{quote_currency}"
        params = {"apikey": self._api_key} if self._api_key else None

        logger.debug(f"Fetching rate {ticker}/{quote_currency} from {self.name}")

        try:
            response = await self._http.get(url, params=params, timeout=self._timeout)
        except httpx.TooManyRedirects as e:
            logger.warning(f"Too many redirects fetching {ticker}/{quote_currency}: {e}")
            raise TooManyRedirectsError(ticker, quote_currency, self.name) from e
        except httpx.TransportError as e:
            reason = str(e) or type(e).__name__
            raise ConnectionFailureError(ticker, quote_currency, self.name, reason) from e
        except httpx.DecodingError as e:
            logger.error(f"Undecodable response body for {ticker}/{quote_currency}: {e}")
            raise MalformedResponseError(
                ticker, quote_currency, self.name, "response body could not be decoded"
            ) from e

        self._raise_for_status(response, ticker, quote_currency)
        return self._parse_rate(response, base_currency, ticker, quote_currency)

    # =========================================================================
    # PRIVATE METHODS
    # =========================================================================

    def _raise_for_status(self, response: httpx.Response, ticker: str, quote_currency: str) -> None:
        status = response.status_code

        if status >= 500:
            raise ProviderServerError(ticker, quote_currency, self.name, status)

        if status >= 400:
            # Provider error bodies may echo the API key; only the status is kept
            logger.warning(
                f"{self.name} rejected {ticker}/{quote_currency} with status {status}",
                extra={"provider": self.name, "currency": ticker, "status_code": status},
            )
            raise ProviderClientError(ticker, quote_currency, self.name, status)

        if 300 <= status < 400:
            logger.warning(f"Unresolved redirect ({status}) for {ticker}/{quote_currency}")
            raise TooManyRedirectsError(ticker, quote_currency, self.name)

    def _parse_rate(
        self,
        response: httpx.Response,
        base_currency: CurrencyCode,
        ticker: str,
        quote_currency: str,
    ) -> ExchangeRate:
        try:
            payload = response.json(parse_float=Decimal)
        except ValueError as e:
            self._log_malformed(ticker, quote_currency, "body is not valid JSON")
            raise MalformedResponseError(
                ticker, quote_currency, self.name, "body is not valid JSON"
            ) from e

        if not isinstance(payload, dict) or "rate" not in payload:
            self._log_malformed(ticker, quote_currency, "missing 'rate' field")
            raise MalformedResponseError(ticker, quote_currency, self.name, "missing 'rate' field")

        rate = self._to_decimal(payload["rate"])
        if rate is None or not rate.is_finite() or rate <= 0:
            reason = f"invalid rate value {payload['rate']!r}"
            self._log_malformed(ticker, quote_currency, reason)
            raise MalformedResponseError(ticker, quote_currency, self.name, reason)

        return ExchangeRate(
            base_currency=base_currency,
            quote_currency=quote_currency,
            rate=rate,
            observed_at=self._parse_time(payload.get("time")),
        )

    @staticmethod
    def _to_decimal(value: Any) -> Decimal | None:
        if isinstance(value, bool):
            return None
        if isinstance(value, Decimal):
            return value
        if isinstance(value, (int, str)):
            try:
                return Decimal(str(value))
            except InvalidOperation:
                return None
        return None

    @staticmethod
    def _parse_time(value: Any) -> datetime:
        """Provider timestamp, or now (UTC) when absent or unparseable."""
        if isinstance(value, str):
            try:
                observed = datetime.fromisoformat(value.replace("Z", "+00:00"))
            except ValueError:
                observed = None
            if observed is not None:
                if observed.tzinfo is None:
                    observed = observed.replace(tzinfo=timezone.utc)
                return observed
        return datetime.now(timezone.utc)

    def _log_malformed(self, ticker: str, quote_currency: str, reason: str) -> None:
        # Data-quality signal: the provider answered 2xx with unusable content
        logger.error(
            f"Malformed {self.name} response for {ticker}/{quote_currency}: {reason}",
            extra={"provider": self.name, "currency": ticker},
        )
