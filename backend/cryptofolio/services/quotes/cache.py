# backend/cryptofolio/services/quotes/cache.py
"""
Short-lived in-memory cache of exchange rates with single-flight fetches.

Entries are keyed by (base currency, quote currency) and expire after a
fixed freshness window. There is no size bound; the currency set is
small and fixed.

Concurrency (asyncio):
    - At most one fetch per key is in flight. Concurrent callers for the
      same key await the same task through asyncio.shield(), so one
      caller giving up does not abort the fetch for the others.
    - When the last waiter is cancelled the fetch task is cancelled too,
      which aborts the outbound HTTP request.
    - Different keys never wait on each other.
    - Failed fetches are not cached.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Hashable

from cryptofolio.services.quotes.base import ExchangeRate

logger = logging.getLogger(__name__)

CacheKey = tuple[Hashable, str]
FetchFn = Callable[[], Awaitable[ExchangeRate]]


@dataclass(frozen=True)
class _CacheEntry:
    rate: ExchangeRate
    fetched_at: float


class _InFlight:
    """A running fetch and the number of callers awaiting it."""

    __slots__ = ("task", "waiters")

    def __init__(self, task: "asyncio.Task[ExchangeRate]") -> None:
        self.task = task
        self.waiters = 0


@dataclass
class RateCacheStats:
    hits: int = 0
    misses: int = 0
    fetches: int = 0
    coalesced: int = 0


class RateCache:
    """
    Time-based exchange-rate cache.

    Args:
        ttl_seconds: Freshness window for a fetched rate
        clock: Monotonic time source (injectable for tests)

    Example:
        cache = RateCache(ttl_seconds=45)
        rate = await cache.get_or_fetch(
            CurrencyCode.BTC, "USD",
            lambda: client.get_rate(CurrencyCode.BTC, "USD"),
        )
    """

    def __init__(
        self,
        ttl_seconds: float = 45.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")

        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[CacheKey, _CacheEntry] = {}
        self._in_flight: dict[CacheKey, _InFlight] = {}
        self._stats = RateCacheStats()

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    @property
    def stats(self) -> RateCacheStats:
        return RateCacheStats(**vars(self._stats))

    def __len__(self) -> int:
        return len(self._entries)

    # =========================================================================
    # PUBLIC METHODS
    # =========================================================================

    async def get_or_fetch(
        self,
        base_currency: Hashable,
        quote_currency: str,
        fetch_fn: FetchFn,
    ) -> ExchangeRate:
        """
        Return a fresh cached rate, or fetch one (once per key).

        Args:
            base_currency: Currency being priced
            quote_currency: Fiat currency
            fetch_fn: Zero-argument coroutine function performing the lookup

        Raises:
            Whatever fetch_fn raised; the failure is not cached
        """
        key = (base_currency, quote_currency)

        entry = self._entries.get(key)
        if entry is not None and self._is_fresh(entry):
            self._stats.hits += 1
            logger.debug(f"Rate cache hit for {key}")
            return entry.rate

        self._stats.misses += 1
        flight = self._in_flight.get(key)
        if flight is None:
            flight = self._start_fetch(key, fetch_fn)
        else:
            self._stats.coalesced += 1
            logger.debug(f"Joining in-flight fetch for {key}")

        flight.waiters += 1
        try:
            return await asyncio.shield(flight.task)
        finally:
            flight.waiters -= 1
            if flight.waiters == 0 and not flight.task.done():
                logger.debug(f"All callers gave up on {key}, cancelling fetch")
                # Later callers must start a new fetch, not join the dying one
                if self._in_flight.get(key) is flight:
                    del self._in_flight[key]
                flight.task.cancel()

    def invalidate(self, base_currency: Hashable | None = None, quote_currency: str | None = None) -> int:
        """
        Drop cached entries matching the given filters (all when None).

        Returns:
            Number of entries removed
        """
        keys = [
            key for key in self._entries
            if (base_currency is None or key[0] == base_currency)
            and (quote_currency is None or key[1] == quote_currency)
        ]
        for key in keys:
            del self._entries[key]
        return len(keys)

    # =========================================================================
    # PRIVATE METHODS
    # =========================================================================

    def _is_fresh(self, entry: _CacheEntry) -> bool:
        return self._clock() - entry.fetched_at < self._ttl

    def _start_fetch(self, key: CacheKey, fetch_fn: FetchFn) -> _InFlight:
        self._stats.fetches += 1
        logger.debug(f"Rate cache miss for {key}, fetching")

        task = asyncio.create_task(self._fetch_and_store(key, fetch_fn))
        flight = _InFlight(task)
        self._in_flight[key] = flight
        task.add_done_callback(lambda t: self._finish_fetch(key, flight))
        return flight

    async def _fetch_and_store(self, key: CacheKey, fetch_fn: FetchFn) -> ExchangeRate:
        rate = await fetch_fn()
        self._entries[key] = _CacheEntry(rate=rate, fetched_at=self._clock())
        return rate

    def _finish_fetch(self, key: CacheKey, flight: _InFlight) -> None:
        if self._in_flight.get(key) is flight:
            del self._in_flight[key]
        # Mark the outcome as retrieved even if every waiter was cancelled
        if not flight.task.cancelled():
            flight.task.exception()
