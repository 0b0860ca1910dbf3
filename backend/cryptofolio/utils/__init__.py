# backend/cryptofolio/utils/__init__.py
"""
Cross-cutting utilities:
- logging: Logging configuration with correlation ID support
- context: Request-scoped correlation ID

Usage:
    from cryptofolio.utils import setup_logging, get_correlation_id
"""

from cryptofolio.utils.context import (
    get_correlation_id,
    set_correlation_id,
    clear_correlation_id,
)
from cryptofolio.utils.logging import setup_logging

__all__ = [
    # Logging
    "setup_logging",
    # Context
    "get_correlation_id",
    "set_correlation_id",
    "clear_correlation_id",
]
