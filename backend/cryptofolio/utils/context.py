# backend/cryptofolio/utils/context.py
"""
Request-scoped context storage.

Uses contextvars, so values follow the request through async/await calls
and into tasks spawned while handling it (e.g. concurrent rate lookups).

Usage:
    from cryptofolio.utils.context import get_correlation_id

    correlation_id = get_correlation_id()  # None outside a request
"""

from contextvars import ContextVar

_correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)


def get_correlation_id() -> str | None:
    """Correlation ID of the current request, or None if not set."""
    return _correlation_id_var.get()


def set_correlation_id(correlation_id: str) -> None:
    """Set the correlation ID; called by middleware at request start."""
    _correlation_id_var.set(correlation_id)


def clear_correlation_id() -> None:
    """Clear the correlation ID; called by middleware at request end."""
    _correlation_id_var.set(None)
