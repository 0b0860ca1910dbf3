# tests/services/test_circuit_breaker.py
"""
Tests for the circuit breaker implementation.
"""

import asyncio

import pytest

from cryptofolio.services.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerOpen,
    CircuitState,
)
from cryptofolio.services.exceptions import ConnectionFailureError, ProviderClientError
from tests.conftest import FakeClock


class ProviderDown(Exception):
    pass


async def fail(breaker: CircuitBreaker, exc: Exception | None = None) -> None:
    with pytest.raises(type(exc) if exc else ProviderDown):
        async with breaker:
            raise exc or ProviderDown()


async def succeed(breaker: CircuitBreaker) -> None:
    async with breaker:
        pass


class TestCircuitBreakerInit:
    """Tests for circuit breaker initialization."""

    def test_default_values(self):
        """Should initialize with default values."""
        breaker = CircuitBreaker(name="test")

        assert breaker.name == "test"
        assert breaker.failure_threshold == 5
        assert breaker.recovery_timeout == 60.0
        assert breaker.half_open_max_calls == 1
        assert breaker.state == CircuitState.CLOSED

    def test_invalid_failure_threshold(self):
        """Should reject invalid failure threshold."""
        with pytest.raises(ValueError, match="failure_threshold must be at least 1"):
            CircuitBreaker(name="test", failure_threshold=0)

    def test_invalid_recovery_timeout(self):
        """Should reject negative recovery timeout."""
        with pytest.raises(ValueError, match="recovery_timeout cannot be negative"):
            CircuitBreaker(name="test", recovery_timeout=-1)

    def test_invalid_half_open_max_calls(self):
        """Should reject invalid half_open_max_calls."""
        with pytest.raises(ValueError, match="half_open_max_calls must be at least 1"):
            CircuitBreaker(name="test", half_open_max_calls=0)


class TestCircuitBreakerTransitions:
    """Tests for the CLOSED -> OPEN -> HALF_OPEN -> CLOSED cycle."""

    @pytest.mark.asyncio
    async def test_opens_after_threshold(self):
        """Should open after failure_threshold consecutive failures."""
        breaker = CircuitBreaker(name="test", failure_threshold=3, clock=FakeClock())

        for _ in range(2):
            await fail(breaker)
        assert breaker.state == CircuitState.CLOSED

        await fail(breaker)
        assert breaker.state == CircuitState.OPEN
        assert breaker.is_open

    @pytest.mark.asyncio
    async def test_success_resets_failure_count(self):
        """Should only count consecutive failures."""
        breaker = CircuitBreaker(name="test", failure_threshold=2, clock=FakeClock())

        await fail(breaker)
        await succeed(breaker)
        await fail(breaker)

        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_open_rejects_without_running(self):
        """Should fail fast with CircuitBreakerOpen while open."""
        clock = FakeClock()
        breaker = CircuitBreaker(name="quotes", failure_threshold=1, recovery_timeout=30, clock=clock)
        await fail(breaker)
        clock.advance(10)

        ran = False
        with pytest.raises(CircuitBreakerOpen) as exc_info:
            async with breaker:
                ran = True

        assert not ran
        assert exc_info.value.breaker_name == "quotes"
        assert exc_info.value.time_remaining == pytest.approx(20)
        assert breaker.stats.rejected_calls == 1

    @pytest.mark.asyncio
    async def test_half_open_after_recovery_timeout(self):
        """Should allow a trial call once the recovery timeout passed."""
        clock = FakeClock()
        breaker = CircuitBreaker(name="test", failure_threshold=1, recovery_timeout=30, clock=clock)
        await fail(breaker)

        clock.advance(30)

        assert breaker.state == CircuitState.HALF_OPEN

    @pytest.mark.asyncio
    async def test_half_open_success_closes(self):
        """Should close after a successful trial call."""
        clock = FakeClock()
        breaker = CircuitBreaker(name="test", failure_threshold=1, recovery_timeout=30, clock=clock)
        await fail(breaker)
        clock.advance(31)

        await succeed(breaker)

        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_half_open_failure_reopens(self):
        """Should reopen (with a fresh timeout) when the trial call fails."""
        clock = FakeClock()
        breaker = CircuitBreaker(name="test", failure_threshold=1, recovery_timeout=30, clock=clock)
        await fail(breaker)
        clock.advance(31)

        await fail(breaker)

        assert breaker.state == CircuitState.OPEN
        clock.advance(29)
        assert breaker.state == CircuitState.OPEN

    @pytest.mark.asyncio
    async def test_half_open_limits_trial_calls(self):
        """Should reject calls beyond half_open_max_calls while a trial runs."""
        clock = FakeClock()
        breaker = CircuitBreaker(name="test", failure_threshold=1, recovery_timeout=30, clock=clock)
        await fail(breaker)
        clock.advance(31)

        trial_started = asyncio.Event()
        release = asyncio.Event()

        async def trial():
            async with breaker:
                trial_started.set()
                await release.wait()

        task = asyncio.create_task(trial())
        await trial_started.wait()

        with pytest.raises(CircuitBreakerOpen):
            async with breaker:
                pass

        release.set()
        await task
        assert breaker.state == CircuitState.CLOSED


class TestCircuitBreakerExclusions:
    """Tests for which outcomes count as failures."""

    @pytest.mark.asyncio
    async def test_excluded_exceptions_do_not_count(self):
        """Should treat excluded exceptions as healthy answers."""
        breaker = CircuitBreaker(
            name="test",
            failure_threshold=1,
            excluded_exceptions=(ProviderClientError,),
            clock=FakeClock(),
        )

        await fail(breaker, ProviderClientError("BTC", "USD", "coinapi", 404))

        assert breaker.state == CircuitState.CLOSED
        assert breaker.stats.successful_calls == 1

    @pytest.mark.asyncio
    async def test_connection_failures_count(self):
        """Should count failures that are not excluded."""
        breaker = CircuitBreaker(
            name="test",
            failure_threshold=1,
            excluded_exceptions=(ProviderClientError,),
            clock=FakeClock(),
        )

        await fail(breaker, ConnectionFailureError("BTC", "USD", "coinapi", "refused"))

        assert breaker.state == CircuitState.OPEN

    @pytest.mark.asyncio
    async def test_cancellation_is_neutral(self):
        """Should count a cancelled call as neither success nor failure."""
        breaker = CircuitBreaker(name="test", failure_threshold=1, clock=FakeClock())
        started = asyncio.Event()

        async def slow():
            async with breaker:
                started.set()
                await asyncio.sleep(10)

        task = asyncio.create_task(slow())
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        stats = breaker.stats
        assert breaker.state == CircuitState.CLOSED
        assert stats.failed_calls == 0
        assert stats.successful_calls == 0


class TestCircuitBreakerManualControl:
    """Tests for reset() and force_open()."""

    @pytest.mark.asyncio
    async def test_force_open_and_reset(self):
        """Should open on demand and close again on reset."""
        breaker = CircuitBreaker(name="test", clock=FakeClock())

        breaker.force_open()
        assert breaker.is_open
        with pytest.raises(CircuitBreakerOpen):
            await succeed(breaker)

        breaker.reset()
        assert breaker.state == CircuitState.CLOSED
        await succeed(breaker)

    def test_stats_is_a_copy(self):
        """Should not let callers mutate internal counters."""
        breaker = CircuitBreaker(name="test")

        stats = breaker.stats
        stats.failed_calls = 99

        assert breaker.stats.failed_calls == 0
