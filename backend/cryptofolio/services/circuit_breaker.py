# backend/cryptofolio/services/circuit_breaker.py
"""
Circuit breaker guarding calls to the exchange-rate provider.

After enough consecutive failures the breaker opens and quote requests
fail fast with CircuitBreakerOpen instead of waiting on a provider that
is down. Once the recovery timeout has passed, a limited number of trial
calls are let through.

States:
    CLOSED    - Normal operation, calls pass through
    OPEN      - Too many failures, calls rejected immediately
    HALF_OPEN - Recovery trial, limited calls allowed

Usage:
    breaker = CircuitBreaker(name="coinapi", failure_threshold=5)

    async with breaker:
        response = await http_client.get(url)
"""

import asyncio
import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

logger = logging.getLogger(__name__)


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerOpen(Exception):
    """
    Raised when the breaker is open and the call was not attempted.

    Attributes:
        breaker_name: Name of the circuit breaker
        time_remaining: Seconds until a trial call is allowed
    """

    def __init__(self, breaker_name: str, time_remaining: float) -> None:
        self.breaker_name = breaker_name
        self.time_remaining = time_remaining
        super().__init__(
            f"Circuit breaker '{breaker_name}' is open. "
            f"Retry in {time_remaining:.1f} seconds."
        )


@dataclass
class CircuitBreakerStats:
    """Counters exposed by the health endpoint."""
    total_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0
    rejected_calls: int = 0
    state_changes: int = 0


@dataclass
class CircuitBreaker:
    """
    Circuit breaker usable as an async context manager.

    The lock is a threading lock because the health endpoint reads the
    state from a worker thread while the event loop records outcomes.

    Attributes:
        name: Identifier used in logs and errors
        failure_threshold: Consecutive failures before opening
        recovery_timeout: Seconds to stay open before a trial call
        half_open_max_calls: Trial calls allowed while half-open
        excluded_exceptions: Exception types that do not count as failures
        clock: Monotonic time source
    """

    name: str
    failure_threshold: int = 5
    recovery_timeout: float = 60.0
    half_open_max_calls: int = 1
    excluded_exceptions: tuple[type[BaseException], ...] = field(default_factory=tuple)
    clock: Callable[[], float] = time.monotonic

    _state: CircuitState = field(default=CircuitState.CLOSED, init=False)
    _failure_count: int = field(default=0, init=False)
    _opened_at: float = field(default=0.0, init=False)
    _half_open_calls: int = field(default=0, init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False)
    _stats: CircuitBreakerStats = field(default_factory=CircuitBreakerStats, init=False)

    def __post_init__(self) -> None:
        if self.failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        if self.recovery_timeout < 0:
            raise ValueError("recovery_timeout cannot be negative")
        if self.half_open_max_calls < 1:
            raise ValueError("half_open_max_calls must be at least 1")

        logger.info(
            f"CircuitBreaker '{self.name}' initialized: "
            f"threshold={self.failure_threshold}, "
            f"recovery_timeout={self.recovery_timeout}s"
        )

    @property
    def state(self) -> CircuitState:
        """Current state, moving OPEN to HALF_OPEN once the timeout passed."""
        with self._lock:
            self._refresh_state()
            return self._state

    @property
    def stats(self) -> CircuitBreakerStats:
        """Copy of the current counters."""
        with self._lock:
            return CircuitBreakerStats(**vars(self._stats))

    @property
    def is_open(self) -> bool:
        return self.state == CircuitState.OPEN

    # =========================================================================
    # ASYNC CONTEXT MANAGER
    # =========================================================================

    async def __aenter__(self) -> "CircuitBreaker":
        with self._lock:
            self._stats.total_calls += 1
            if not self._can_execute():
                self._stats.rejected_calls += 1
                raise CircuitBreakerOpen(self.name, self._time_until_recovery())
        return self

    async def __aexit__(self, exc_type: type | None, exc_val: BaseException | None, exc_tb: Any) -> bool:
        with self._lock:
            if exc_val is None:
                self._record_success()
            elif isinstance(exc_val, asyncio.CancelledError):
                # Caller gave up; says nothing about provider health
                self._release_trial_slot()
            elif self.excluded_exceptions and isinstance(exc_val, self.excluded_exceptions):
                self._record_success()
            else:
                self._record_failure()
        return False

    # =========================================================================
    # MANUAL CONTROL
    # =========================================================================

    def reset(self) -> None:
        """Close the breaker and forget past failures."""
        with self._lock:
            self._transition_to(CircuitState.CLOSED)
        logger.info(f"CircuitBreaker '{self.name}' manually reset")

    def force_open(self) -> None:
        """Open the breaker, e.g. while the provider is known to be down."""
        with self._lock:
            self._opened_at = self.clock()
            self._transition_to(CircuitState.OPEN)
        logger.warning(f"CircuitBreaker '{self.name}' manually opened")

    # =========================================================================
    # PRIVATE METHODS (call with the lock held)
    # =========================================================================

    def _refresh_state(self) -> None:
        if self._state == CircuitState.OPEN and self._time_until_recovery() <= 0:
            self._transition_to(CircuitState.HALF_OPEN)

    def _can_execute(self) -> bool:
        self._refresh_state()
        if self._state == CircuitState.CLOSED:
            return True
        if self._state == CircuitState.HALF_OPEN and self._half_open_calls < self.half_open_max_calls:
            self._half_open_calls += 1
            return True
        return False

    def _release_trial_slot(self) -> None:
        if self._state == CircuitState.HALF_OPEN and self._half_open_calls > 0:
            self._half_open_calls -= 1

    def _record_success(self) -> None:
        self._stats.successful_calls += 1
        if self._state == CircuitState.HALF_OPEN:
            self._transition_to(CircuitState.CLOSED)
        else:
            self._failure_count = 0

    def _record_failure(self) -> None:
        self._stats.failed_calls += 1

        if self._state == CircuitState.HALF_OPEN:
            self._opened_at = self.clock()
            self._transition_to(CircuitState.OPEN)
            return

        if self._state == CircuitState.CLOSED:
            self._failure_count += 1
            if self._failure_count >= self.failure_threshold:
                self._opened_at = self.clock()
                self._transition_to(CircuitState.OPEN)

    def _transition_to(self, new_state: CircuitState) -> None:
        old_state = self._state
        self._state = new_state
        self._stats.state_changes += 1
        self._half_open_calls = 0
        if new_state == CircuitState.CLOSED:
            self._failure_count = 0

        log = logger.warning if new_state == CircuitState.OPEN else logger.info
        log(
            f"CircuitBreaker '{self.name}' state change: "
            f"{old_state.value} -> {new_state.value}"
        )

    def _time_until_recovery(self) -> float:
        remaining = self.recovery_timeout - (self.clock() - self._opened_at)
        return max(0.0, remaining)
