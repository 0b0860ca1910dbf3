# backend/cryptofolio/services/__init__.py
"""
Service layer for business logic.

Services:
- Have NO knowledge of HTTP (no HTTPException, no status codes)
- Raise domain-specific exceptions from exceptions.py
- Receive database sessions or stores as parameters (not via Depends)

Architecture:
    services/
    ├── __init__.py          # This file
    ├── exceptions.py        # Domain exceptions
    ├── constants.py         # Rounding, provider and rate limit constants
    ├── circuit_breaker.py   # Circuit breaker for the quote provider
    ├── password.py          # bcrypt password hashing
    ├── asset_store.py       # Asset persistence queries
    ├── user_service.py      # User registration, lookup, update, deletion
    ├── quotes/              # Exchange-rate clients and rate cache
    └── valuation/           # Valuation engine and aggregator

Submodules are imported directly (this package re-exports nothing) so
models.py can depend on exceptions.py without an import cycle.
"""
