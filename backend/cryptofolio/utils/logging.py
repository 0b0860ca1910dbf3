# backend/cryptofolio/utils/logging.py
"""
Logging configuration for the Cryptofolio API.

setup_logging() routes every logger to one stdout handler, as text or
JSON (LOG_FORMAT), with the request correlation ID stamped on each record.

Valuation code passes its identifiers through ``extra=``:

    logger.warning("coinapi rejected BTC/USD", extra={"provider": "coinapi",
                                                     "currency": "BTC",
                                                     "status_code": 401})

CONTEXT_FIELDS are promoted to top-level JSON keys (and appended as
``key=value`` pairs in text output) so log searches can filter on them.

Log Levels:
    DEBUG   - Cache hits/misses, outbound quote requests
    INFO    - Users/assets created or deleted, breaker state changes
    WARNING - Retry attempts, provider rejections, timeouts
    ERROR   - Provider outages, malformed provider responses
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from cryptofolio.config import settings
from cryptofolio.utils.context import get_correlation_id

# =============================================================================
# CONSTANTS
# =============================================================================

TEXT_FORMAT = "%(asctime)s | %(levelname)-8s | %(correlation_id)s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

NO_CORRELATION_ID = "no-correlation-id"

# Identifiers the services attach to their records, in output order
CONTEXT_FIELDS = ("user_id", "asset_id", "currency", "provider", "status_code")

VALID_LEVELS = ("DEBUG", "INFO", "WARNING", "WARN", "ERROR", "CRITICAL")

NOISY_LOGGERS = ("httpx", "httpcore", "asyncio", "passlib", "multipart")

# Any other attribute on a record came in through `extra=`
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "correlation_id"}


def _context_of(record: logging.LogRecord) -> dict[str, Any]:
    return {key: getattr(record, key) for key in CONTEXT_FIELDS if hasattr(record, key)}


# =============================================================================
# FILTER
# =============================================================================

class CorrelationIdFilter(logging.Filter):
    """Adds `correlation_id` to every record passing through the handler."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id() or NO_CORRELATION_ID
        return True


# =============================================================================
# FORMATTERS
# =============================================================================

class TextFormatter(logging.Formatter):
    """Human-readable lines, ending with the record's context fields."""

    def __init__(self) -> None:
        super().__init__(fmt=TEXT_FORMAT, datefmt=DATE_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = _context_of(record)
        if not context:
            return line
        pairs = " ".join(f"{key}={value}" for key, value in context.items())
        head, newline, rest = line.partition("\n")
        return f"{head} [{pairs}]{newline}{rest}"


class JsonFormatter(logging.Formatter):
    """
    One JSON object per line, for log aggregation.

    Output format:
    {
        "timestamp": "2024-01-15T10:30:00.123456+00:00",
        "level": "WARNING",
        "logger": "cryptofolio.services.quotes.coinapi",
        "correlation_id": "abc-123-def",
        "message": "coinapi rejected BTC/USD with status 401",
        "provider": "coinapi",
        "currency": "BTC",
        "status_code": 401
    }

    Extras outside CONTEXT_FIELDS are nested under "extra"; values JSON
    cannot encode are rendered with str().
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "correlation_id": getattr(record, "correlation_id", NO_CORRELATION_ID),
            "message": record.getMessage(),
        }
        entry.update(_context_of(record))

        extra = {
            key: value
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and key not in CONTEXT_FIELDS
        }
        if extra:
            entry["extra"] = extra

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


# =============================================================================
# SETUP FUNCTION
# =============================================================================

def setup_logging(
        level: str | None = None,
        log_format: str | None = None,
        suppress_noisy_loggers: bool = True,
) -> None:
    """
    Configure application-wide logging with correlation ID support.

    Call once at startup, before creating the FastAPI application.
    Existing root handlers are replaced.

    Args:
        level: Log level name. Defaults to settings.log_level.
        log_format: 'text' or 'json'. Defaults to settings.log_format.
        suppress_noisy_loggers: Hold third-party loggers at WARNING.

    Raises:
        ValueError: If the level name is not recognised
    """
    log_level = _get_log_level(level or settings.log_level)
    format_type = (log_format or settings.log_format).lower()
    if format_type != "json":
        format_type = "text"

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter() if format_type == "json" else TextFormatter())
    handler.addFilter(CorrelationIdFilter())

    root_logger = logging.getLogger()
    for old_handler in root_logger.handlers[:]:
        root_logger.removeHandler(old_handler)
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level)

    if suppress_noisy_loggers:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        f"Logging configured: level={logging.getLevelName(log_level)}, format={format_type}"
    )


def _get_log_level(level_str: str) -> int:
    """Convert a level name (case-insensitive) to its logging constant."""
    name = level_str.upper().strip()
    if name not in VALID_LEVELS:
        raise ValueError(
            f"Invalid log level: '{level_str}'. "
            f"Valid levels are: {', '.join(VALID_LEVELS)}"
        )
    return logging.getLevelName(name)
