# backend/cryptofolio/main.py
"""
FastAPI application entry point.

This file:
- Configures application-wide logging
- Builds the valuation stack in the lifespan (HTTP client, circuit
  breaker, quote client, rate cache, engine) and keeps it on app.state
- Registers global exception handlers
- Registers all routers
- Defines global endpoints (health checks)
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import httpx
from fastapi import FastAPI, Depends, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from cryptofolio.config import settings
from cryptofolio.database import check_database_health, get_db
from cryptofolio.middleware import (
    CorrelationIdMiddleware,
    limiter,
    rate_limit_exceeded_handler,
    SlowAPIMiddleware,
    RATE_LIMIT_HEALTH,
)
from cryptofolio.routers import assets_router, users_router
from cryptofolio.schemas.errors import ErrorDetail, ValidationErrorDetail
from cryptofolio.services.circuit_breaker import CircuitBreaker
from cryptofolio.services.constants import QUOTE_PROVIDER_NAME
from cryptofolio.services.exceptions import (
    ServiceError,
    ValidationError,
    NotFoundError,
    UserNotFoundError,
    UserExistsError,
    ValuationError,
    UnknownCurrencyError,
    NoQuoteAvailableError,
    ValuationTimeoutError,
    QuoteError,
    ConnectionFailureError,
    ProviderServerError,
    CircuitBreakerOpen,
    ProviderClientError,
    TooManyRedirectsError,
    MalformedResponseError,
)
from cryptofolio.services.quotes import CoinAPIQuoteClient, RateCache
from cryptofolio.services.valuation import ValuationEngine
from cryptofolio.utils import setup_logging

logger = logging.getLogger(__name__)

# =============================================================================
# LOGGING SETUP (must be before app creation)
# =============================================================================

setup_logging()


# =============================================================================
# LIFESPAN (valuation stack)
# =============================================================================

def build_valuation_engine(http_client: httpx.AsyncClient) -> tuple[ValuationEngine, CircuitBreaker]:
    """
    Wire quote client, circuit breaker and rate cache into an engine.

    Only provider outages (connection failures, 5xx) count against the
    breaker; rejected or garbled answers do not.
    """
    breaker = CircuitBreaker(
        name=QUOTE_PROVIDER_NAME,
        failure_threshold=settings.circuit_failure_threshold,
        recovery_timeout=settings.circuit_recovery_timeout,
        excluded_exceptions=(ProviderClientError, TooManyRedirectsError, MalformedResponseError),
    )
    quote_client = CoinAPIQuoteClient(
        http_client=http_client,
        base_url=settings.quote_api_url,
        api_key=settings.quote_api_key,
        timeout=settings.quote_timeout_seconds,
        circuit_breaker=breaker,
        max_attempts=settings.quote_max_attempts,
        backoff_min=settings.quote_backoff_min_seconds,
        backoff_max=settings.quote_backoff_max_seconds,
    )
    engine = ValuationEngine(
        quote_client=quote_client,
        rate_cache=RateCache(ttl_seconds=settings.rate_cache_ttl_seconds),
        quote_currency=settings.quote_currency,
        timeout_seconds=settings.valuation_timeout_seconds,
    )
    return engine, breaker


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Create the shared HTTP client and valuation stack; close them on shutdown."""
    http_client = httpx.AsyncClient(
        follow_redirects=True,
        max_redirects=settings.quote_max_redirects,
        timeout=settings.quote_timeout_seconds,
    )
    engine, breaker = build_valuation_engine(http_client)
    app.state.http_client = http_client
    app.state.valuation_engine = engine
    app.state.quote_breaker = breaker

    logger.info(f"{settings.app_name} started (environment={settings.environment})")
    try:
        yield
    finally:
        await http_client.aclose()
        logger.info(f"{settings.app_name} stopped")


# =============================================================================
# APPLICATION SETUP
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description="Crypto holdings with live valuation in fiat currency",
    version="0.1.0",
    lifespan=lifespan,
)


# =============================================================================
# CORS MIDDLEWARE
# =============================================================================
# Must be added before other middleware
# Origins are configured via CORS_ORIGINS environment variable

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)


# =============================================================================
# MIDDLEWARE (order matters: last added = first executed)
# =============================================================================

# Attach limiter to app state (required by slowapi)
app.state.limiter = limiter

app.add_middleware(SlowAPIMiddleware)

# Correlation ID runs first so every log line of the request carries it
app.add_middleware(CorrelationIdMiddleware)


# =============================================================================
# GLOBAL EXCEPTION HANDLERS
# =============================================================================
# Service exceptions carry no HTTP knowledge; these handlers give each kind
# its status code. Starlette picks the handler of the most specific class.
# =============================================================================

app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)


def _error_response(
    status_code: int,
    exc: Exception,
    details: dict | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorDetail(
            error=type(exc).__name__,
            message=str(exc),
            details=details,
        ).model_dump(),
        headers=headers,
    )


def _valuation_details(exc: ValuationError) -> dict | None:
    details = {}
    if exc.asset_id is not None:
        details["asset_id"] = exc.asset_id
    if exc.currency is not None:
        details["currency"] = exc.currency
    return details or None


def _quote_details(exc: QuoteError) -> dict:
    details = {
        "base_currency": exc.base_currency,
        "quote_currency": exc.quote_currency,
        "provider": exc.provider,
    }
    details.update(_valuation_details(exc) or {})
    return details


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    """Handle validation errors (400)."""
    logger.warning(f"Validation error: {exc}")
    return _error_response(400, exc, {"field": exc.field} if exc.field else None)


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    """Handle missing resources (404)."""
    logger.warning(f"Not found: {exc}")
    return _error_response(
        404,
        exc,
        {"resource_type": exc.resource_type, "resource_id": exc.resource_id},
    )


@app.exception_handler(UserNotFoundError)
async def user_not_found_handler(request: Request, exc: UserNotFoundError) -> JSONResponse:
    """An unknown API token is an authentication failure (401)."""
    logger.warning("Request with unknown API token")
    return _error_response(401, exc, headers={"WWW-Authenticate": "X-API-Token"})


@app.exception_handler(UserExistsError)
async def user_exists_handler(request: Request, exc: UserExistsError) -> JSONResponse:
    """Handle user already exists errors (409)."""
    logger.warning(f"Registration attempt with existing email: {exc.email}")
    return _error_response(409, exc, {"email": exc.email})


@app.exception_handler(UnknownCurrencyError)
async def unknown_currency_handler(request: Request, exc: UnknownCurrencyError) -> JSONResponse:
    """A stored currency code without ticker mapping (422)."""
    logger.error(f"Unknown currency: {exc}")
    return _error_response(422, exc, _valuation_details(exc))


@app.exception_handler(NoQuoteAvailableError)
async def no_quote_handler(request: Request, exc: NoQuoteAvailableError) -> JSONResponse:
    """No rate for the pair (404)."""
    logger.warning(f"No quote available: {exc}")
    return _error_response(404, exc, _valuation_details(exc))


@app.exception_handler(ValuationTimeoutError)
async def valuation_timeout_handler(request: Request, exc: ValuationTimeoutError) -> JSONResponse:
    """Valuation exceeded its time budget (504)."""
    logger.warning(f"Valuation timeout: {exc}")
    return _error_response(504, exc, {"timeout_seconds": exc.timeout_seconds})


@app.exception_handler(QuoteError)
async def quote_error_handler(request: Request, exc: QuoteError) -> JSONResponse:
    """
    Provider answered unusably (502): rejected request, redirect loop
    or malformed body. The provider's own body is never forwarded.
    """
    logger.warning(f"Quote provider error: {exc}")
    return _error_response(502, exc, _quote_details(exc))


@app.exception_handler(ConnectionFailureError)
async def connection_failure_handler(request: Request, exc: ConnectionFailureError) -> JSONResponse:
    """Provider unreachable after retries (503)."""
    logger.error(f"Quote provider unreachable: {exc}")
    return _error_response(503, exc, _quote_details(exc))


@app.exception_handler(ProviderServerError)
async def provider_server_error_handler(request: Request, exc: ProviderServerError) -> JSONResponse:
    """Provider kept failing with 5xx after retries (503)."""
    logger.error(f"Quote provider server error: {exc}")
    return _error_response(
        503,
        exc,
        {**_quote_details(exc), "provider_status": exc.status_code},
    )


@app.exception_handler(CircuitBreakerOpen)
async def circuit_breaker_handler(request: Request, exc: CircuitBreakerOpen) -> JSONResponse:
    """Handle circuit breaker open (503 with Retry-After)."""
    logger.warning(f"Circuit breaker open: {exc.breaker_name}")
    retry_after = int(exc.time_remaining) + 1  # Round up
    return JSONResponse(
        status_code=503,
        content=ErrorDetail(
            error="CircuitBreakerOpen",
            message=f"Service temporarily unavailable. The {exc.breaker_name} circuit breaker is open.",
            details={
                "breaker_name": exc.breaker_name,
                "retry_after": retry_after,
            },
        ).model_dump(),
        headers={"Retry-After": str(retry_after)},
    )


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    """Handle generic service errors (500)."""
    logger.error(f"Service error: {exc}")
    return _error_response(500, exc)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """
    Handle all HTTPExceptions with consistent error format.

    Converts FastAPI's default {"detail": "..."} format to ErrorDetail.
    """
    error_types = {
        400: "BadRequestError",
        401: "UnauthorizedError",
        403: "ForbiddenError",
        404: "NotFoundError",
        405: "MethodNotAllowedError",
        409: "ConflictError",
        422: "ValidationError",
        429: "RateLimitError",
        500: "InternalServerError",
        503: "ServiceUnavailableError",
    }
    error_type = error_types.get(exc.status_code, "HTTPError")

    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorDetail(
            error=error_type,
            message=str(exc.detail) if exc.detail else "An error occurred",
            details=None,
        ).model_dump(),
        headers=exc.headers,
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Converts the default 422 body to ValidationErrorDetail."""
    errors = []
    for error in exc.errors():
        errors.append({
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        })

    return JSONResponse(
        status_code=422,
        content=ValidationErrorDetail(
            error="ValidationError",
            message="Request validation failed",
            details=errors,
        ).model_dump(),
    )


# =============================================================================
# ROUTER REGISTRATION
# =============================================================================

app.include_router(users_router)  # /users, /users/me
app.include_router(assets_router)  # /assets/*


# =============================================================================
# GLOBAL ENDPOINTS
# =============================================================================

@app.get("/", tags=["Health"])
@limiter.limit(RATE_LIMIT_HEALTH)
def root(request: Request):
    """
    API root - returns basic application info.
    """
    return {
        "message": f"Welcome to {settings.app_name}!",
        "docs": "/docs",
        "redoc": "/redoc",
    }


@app.get("/health", tags=["Health"])
@limiter.limit(RATE_LIMIT_HEALTH)
def health_check(request: Request, db: Session = Depends(get_db)):
    """
    Health of the database (critical) and the quote provider (non-critical).

    **Response Status Codes:**
    - 200: healthy, or degraded when the quote provider breaker is open
    - 503: database unhealthy - do not route traffic here
    """
    checks = {}
    overall_status = "healthy"

    database = check_database_health(db)
    checks["database"] = {**database, "critical": True}
    critical_healthy = database["status"] == "healthy"
    if not critical_healthy:
        overall_status = "unhealthy"

    breaker: CircuitBreaker | None = getattr(request.app.state, "quote_breaker", None)
    if breaker is None:
        checks["quote_provider"] = {"status": "unknown", "critical": False}
    else:
        stats = breaker.stats
        checks["quote_provider"] = {
            "status": "unhealthy" if breaker.is_open else "healthy",
            "critical": False,
            "circuit_breaker_state": breaker.state.value,
            "total_calls": stats.total_calls,
            "failed_calls": stats.failed_calls,
            "rejected_calls": stats.rejected_calls,
        }
        if breaker.is_open and overall_status == "healthy":
            overall_status = "degraded"

    response_data = {
        "status": overall_status,
        "checks": checks,
    }

    if not critical_healthy:
        return JSONResponse(status_code=503, content=response_data)

    return response_data


@app.get("/health/live", tags=["Health"])
@limiter.limit(RATE_LIMIT_HEALTH)
def liveness_check(request: Request):
    """
    Liveness probe. Always 200 while the process runs; does not check
    dependencies (use /health/ready for that).
    """
    return {"status": "alive"}


@app.get("/health/ready", tags=["Health"])
@limiter.limit(RATE_LIMIT_HEALTH)
def readiness_check(request: Request, db: Session = Depends(get_db)):
    """
    Readiness probe. 503 while the database is unreachable.
    """
    if check_database_health(db)["status"] != "healthy":
        return JSONResponse(
            status_code=503,
            content={
                "status": "not_ready",
                "error": "Database unavailable",
            },
        )
    return {"status": "ready"}
