# backend/cryptofolio/services/constants.py
"""
Centralized constants for the valuation services and API limits.

Tunable values that operators are expected to change (timeouts, TTLs,
retry counts) live in config.py instead.

Usage:
    from cryptofolio.services.constants import VALUE_QUANTUM, RATE_LIMIT_WRITE
"""

from decimal import Decimal, ROUND_HALF_UP


# =============================================================================
# VALUATION
# =============================================================================

# Fiat values are reported with 3 decimal places, half-up
VALUE_DECIMAL_PLACES: int = 3
VALUE_QUANTUM: Decimal = Decimal("0.001")
VALUE_ROUNDING: str = ROUND_HALF_UP

# Type-safe zero for Decimal sums
ZERO: Decimal = Decimal("0")

# Default fiat currency values are expressed in
DEFAULT_QUOTE_CURRENCY: str = "USD"


# =============================================================================
# QUOTE PROVIDER
# =============================================================================

QUOTE_PROVIDER_NAME: str = "coinapi"


# =============================================================================
# API TOKENS
# =============================================================================

API_TOKEN_HEADER: str = "X-API-Token"
API_TOKEN_QUERY_PARAM: str = "token"


# =============================================================================
# RATE LIMITING CONSTANTS
# =============================================================================
# Format follows slowapi/limits syntax: "100/minute", "10/hour", etc.

# Default rate limit for read endpoints
RATE_LIMIT_DEFAULT: str = "100/minute"

# Rate limit for write endpoints (POST, PATCH, PUT, DELETE)
RATE_LIMIT_WRITE: str = "30/minute"

# Valuation endpoints may call the quote provider, whose quota is small
RATE_LIMIT_VALUATION: str = "30/minute"

# Registration - prevent mass account creation
RATE_LIMIT_REGISTER: str = "5/minute"

# Health checks - monitoring tools poll frequently
RATE_LIMIT_HEALTH: str = "300/minute"
