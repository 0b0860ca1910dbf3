# backend/cryptofolio/services/exceptions.py
"""
Service layer exceptions.

These exceptions represent domain-specific errors and contain NO HTTP knowledge.
main.py is responsible for mapping them to HTTP responses.

Exception Hierarchy:
    ServiceError (base)
    ├── ValidationError
    ├── NotFoundError
    │   ├── AssetNotFoundError
    │   └── UserNotFoundError
    ├── UserExistsError
    └── ValuationError
        ├── UnknownCurrencyError
        ├── NoQuoteAvailableError
        ├── ValuationTimeoutError
        └── QuoteError
            ├── ConnectionFailureError   (retryable)
            ├── ProviderServerError      (retryable)
            ├── ProviderClientError
            ├── TooManyRedirectsError
            └── MalformedResponseError

    CircuitBreakerOpen (from circuit_breaker module)
        - Raised when the quote provider breaker is open
"""

from cryptofolio.services.circuit_breaker import CircuitBreakerOpen


class ServiceError(Exception):
    """
    Base exception for all service layer errors.

    Attributes:
        message: Human-readable error description
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message


# =============================================================================
# VALIDATION ERRORS
# =============================================================================


class ValidationError(ServiceError):
    """
    Raised when input validation fails beyond what request schemas check.

    Attributes:
        field: Name of the offending field, if known
    """

    def __init__(self, message: str, field: str | None = None) -> None:
        self.field = field
        super().__init__(message)


# =============================================================================
# NOT FOUND ERRORS
# =============================================================================


class NotFoundError(ServiceError):
    """Base class for missing resources."""

    def __init__(
        self,
        message: str,
        resource_type: str | None = None,
        resource_id: int | str | None = None,
    ) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(message)


class AssetNotFoundError(NotFoundError):
    """Raised when an asset does not exist or belongs to another user."""

    def __init__(self, asset_id: int) -> None:
        self.asset_id = asset_id
        super().__init__(
            f"Asset {asset_id} not found",
            resource_type="Asset",
            resource_id=asset_id,
        )


class UserNotFoundError(NotFoundError):
    """
    Raised when no user matches an API token.

    The token itself is not kept on the exception so it never ends up in
    logs or responses.
    """

    def __init__(self) -> None:
        super().__init__("User was not found", resource_type="User")


class UserExistsError(ServiceError):
    """Raised when an email address is already registered."""

    def __init__(self, email: str) -> None:
        self.email = email
        super().__init__(f"A user with email '{email}' already exists")


# =============================================================================
# VALUATION ERRORS
# =============================================================================


class ValuationError(ServiceError):
    """
    Base class for failures while valuing assets.

    The engine stamps the asset and currency it was working on through
    with_context() before re-raising, so callers know which holding failed.

    Attributes:
        asset_id: Asset being valued when the error happened, if any
        currency: Currency code being valued, if any
    """

    def __init__(
        self,
        message: str,
        asset_id: int | None = None,
        currency: int | None = None,
    ) -> None:
        self.asset_id = asset_id
        self.currency = currency
        super().__init__(message)

    def with_context(
        self,
        asset_id: int | None = None,
        currency: int | None = None,
    ) -> "ValuationError":
        """Attach asset context (keeps values already set) and return self."""
        if self.asset_id is None:
            self.asset_id = asset_id
        if self.currency is None:
            self.currency = currency
        return self

    def __str__(self) -> str:
        if self.asset_id is not None:
            return f"{self.message} (asset {self.asset_id})"
        return self.message


class UnknownCurrencyError(ValuationError):
    """
    Raised when a stored currency code has no ticker mapping.

    This is a data error, distinct from quote failures.
    """

    def __init__(self, currency_code: object) -> None:
        self.currency_code = currency_code
        super().__init__(f"Unknown currency code: {currency_code!r}")


class NoQuoteAvailableError(ValuationError):
    """Raised when the quote client returned no rate for a pair."""

    def __init__(self, base_currency: str | None, quote_currency: str) -> None:
        self.base_currency = base_currency
        self.quote_currency = quote_currency
        super().__init__(
            f"No exchange rate available for {base_currency or '<empty>'}/{quote_currency}"
        )


class ValuationTimeoutError(ValuationError):
    """Raised when a valuation did not finish within its time budget."""

    def __init__(self, timeout_seconds: float) -> None:
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Valuation did not complete within {timeout_seconds:g} seconds")


# =============================================================================
# QUOTE PROVIDER ERRORS
# =============================================================================


class QuoteError(ValuationError):
    """
    Base class for failures talking to the exchange-rate provider.

    Attributes:
        base_currency: Ticker that was requested
        quote_currency: Fiat currency that was requested
        provider: Name of the quote provider
        retryable: Whether the client retries this kind of failure
    """

    retryable: bool = False

    def __init__(
        self,
        message: str,
        base_currency: str,
        quote_currency: str,
        provider: str,
    ) -> None:
        self.base_currency = base_currency
        self.quote_currency = quote_currency
        self.provider = provider
        super().__init__(message)


class ConnectionFailureError(QuoteError):
    """Transport-level failure (DNS, TCP, TLS, timeout) reaching the provider."""

    retryable = True

    def __init__(
        self,
        base_currency: str,
        quote_currency: str,
        provider: str,
        reason: str,
    ) -> None:
        self.reason = reason
        super().__init__(
            f"Could not reach {provider} for {base_currency}/{quote_currency}: {reason}",
            base_currency,
            quote_currency,
            provider,
        )


class ProviderServerError(QuoteError):
    """The provider answered with a 5xx status."""

    retryable = True

    def __init__(
        self,
        base_currency: str,
        quote_currency: str,
        provider: str,
        status_code: int,
    ) -> None:
        self.status_code = status_code
        super().__init__(
            f"{provider} server error {status_code} for {base_currency}/{quote_currency}",
            base_currency,
            quote_currency,
            provider,
        )


class ProviderClientError(QuoteError):
    """
    The provider rejected the request with a 4xx status.

    Covers unknown tickers, bad API keys and exhausted provider quotas.
    """

    def __init__(
        self,
        base_currency: str,
        quote_currency: str,
        provider: str,
        status_code: int,
    ) -> None:
        self.status_code = status_code
        super().__init__(
            f"{provider} rejected {base_currency}/{quote_currency} with status {status_code}",
            base_currency,
            quote_currency,
            provider,
        )


class TooManyRedirectsError(QuoteError):
    """The provider sent more redirects than the client follows."""

    def __init__(self, base_currency: str, quote_currency: str, provider: str) -> None:
        super().__init__(
            f"Too many redirects from {provider} for {base_currency}/{quote_currency}",
            base_currency,
            quote_currency,
            provider,
        )


class MalformedResponseError(QuoteError):
    """The response body could not be decoded into a rate."""

    def __init__(
        self,
        base_currency: str,
        quote_currency: str,
        provider: str,
        reason: str,
    ) -> None:
        self.reason = reason
        super().__init__(
            f"Malformed response from {provider} for {base_currency}/{quote_currency}: {reason}",
            base_currency,
            quote_currency,
            provider,
        )


__all__ = [
    "ServiceError",
    "ValidationError",
    "NotFoundError",
    "AssetNotFoundError",
    "UserNotFoundError",
    "UserExistsError",
    "ValuationError",
    "UnknownCurrencyError",
    "NoQuoteAvailableError",
    "ValuationTimeoutError",
    "QuoteError",
    "ConnectionFailureError",
    "ProviderServerError",
    "ProviderClientError",
    "TooManyRedirectsError",
    "MalformedResponseError",
    "CircuitBreakerOpen",
]
