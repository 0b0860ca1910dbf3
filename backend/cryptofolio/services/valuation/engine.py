# backend/cryptofolio/services/valuation/engine.py
"""
Valuation engine: turns stored crypto amounts into fiat values.

Every rate lookup goes through the RateCache (when one is configured)
and then the RateQuoteClient. Multi-asset operations request one rate
per distinct currency, concurrently, rather than one per asset.

Failure policy:
    - Unmapped currency codes raise UnknownCurrencyError
    - Quote failures propagate unchanged, annotated with the asset or
      currency being valued
    - A client returning no rate raises NoQuoteAvailableError
    - Multi-currency operations are all-or-nothing: the first failing
      currency aborts the call and cancels the other lookups
    - With timeout_seconds set, expiry cancels the outstanding lookups
      (and their HTTP requests) and raises ValuationTimeoutError
"""

import asyncio
import logging
from collections.abc import Awaitable, Iterable, Mapping, Sequence
from decimal import Decimal
from typing import TypeVar

from cryptofolio.models import CurrencyCode
from cryptofolio.services.constants import DEFAULT_QUOTE_CURRENCY
from cryptofolio.services.exceptions import (
    NoQuoteAvailableError,
    ValuationError,
    ValuationTimeoutError,
)
from cryptofolio.services.quotes.base import ExchangeRate, RateQuoteClient
from cryptofolio.services.quotes.cache import RateCache
from cryptofolio.services.valuation.aggregator import AssetAggregator, to_decimal
from cryptofolio.services.valuation.types import (
    AssetLike,
    AssetValuation,
    BucketValuation,
    PortfolioValuation,
    value_in_quote,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ValuationEngine:
    """
    Values single assets and whole portfolios.

    Args:
        quote_client: Source of exchange rates
        rate_cache: Optional shared cache; without it every lookup hits
            the client
        quote_currency: Fiat currency values are expressed in
        timeout_seconds: Upper bound for each public call (None = no bound)
        aggregator: Bucket builder (defaults to AssetAggregator)
    """

    def __init__(
        self,
        quote_client: RateQuoteClient,
        rate_cache: RateCache | None = None,
        quote_currency: str = DEFAULT_QUOTE_CURRENCY,
        timeout_seconds: float | None = None,
        aggregator: AssetAggregator | None = None,
    ) -> None:
        self._client = quote_client
        self._cache = rate_cache
        self._quote_currency = quote_currency.upper().strip()
        self._timeout = timeout_seconds
        self._aggregator = aggregator or AssetAggregator()

        logger.info(
            f"ValuationEngine initialized: provider={quote_client.name}, "
            f"quote_currency={self._quote_currency}, "
            f"cache={'on' if rate_cache is not None else 'off'}"
        )

    @property
    def quote_currency(self) -> str:
        return self._quote_currency

    # =========================================================================
    # PUBLIC METHODS
    # =========================================================================

    async def value_asset(self, asset: AssetLike) -> AssetValuation:
        """
        Value one asset.

        Returns:
            AssetValuation with value_in_quote = round(amount * rate, 3)

        Raises:
            UnknownCurrencyError: Asset currency has no ticker
            QuoteError / NoQuoteAvailableError: Rate lookup failed
            ValuationTimeoutError: Lookup exceeded the time budget
        """
        return await self._bounded(self._value_asset(asset))

    async def value_assets(self, assets: Sequence[AssetLike]) -> list[AssetValuation]:
        """
        Value each asset individually, with one lookup per distinct currency.

        Results are in input order. All-or-nothing like value_portfolio.
        """
        return await self._bounded(self._value_assets(assets))

    async def value_portfolio(self, assets: Iterable[AssetLike]) -> PortfolioValuation:
        """
        Value a portfolio bucket by bucket.

        Amounts are summed per currency first, then multiplied by one rate
        per bucket. Empty input gives an empty valuation without any lookup.
        """
        totals = self._aggregator.group_and_sum(assets)
        return await self._bounded(self._value_totals(totals))

    async def value_totals(self, totals: Mapping[CurrencyCode, Decimal]) -> PortfolioValuation:
        """Value per-currency totals computed elsewhere (e.g. by the database)."""
        return await self._bounded(self._value_totals(totals))

    async def value_holdings(
        self, assets: Sequence[AssetLike]
    ) -> tuple[list[AssetValuation], PortfolioValuation]:
        """
        Per-asset values and per-currency totals from a single set of lookups.

        Used by listings that show both; each distinct currency is looked
        up once for the two results.
        """
        return await self._bounded(self._value_holdings(assets))

    # =========================================================================
    # PRIVATE METHODS
    # =========================================================================

    async def _value_asset(self, asset: AssetLike) -> AssetValuation:
        try:
            currency = CurrencyCode.from_value(asset.currency)
            rate = await self._get_rate(currency)
        except ValuationError as e:
            logger.warning(
                f"Valuation failed for asset {asset.id}: {e.message}",
                extra={"asset_id": asset.id, "currency": asset.currency},
            )
            raise e.with_context(asset_id=asset.id, currency=asset.currency)

        return self._asset_valuation(asset, currency, rate)

    async def _value_assets(self, assets: Sequence[AssetLike]) -> list[AssetValuation]:
        currencies = self._resolve_currencies(assets)
        rates = await self._get_rates(set(currencies))
        return [
            self._asset_valuation(asset, currency, rates[currency])
            for asset, currency in zip(assets, currencies)
        ]

    async def _value_holdings(
        self, assets: Sequence[AssetLike]
    ) -> tuple[list[AssetValuation], PortfolioValuation]:
        currencies = self._resolve_currencies(assets)
        totals = self._aggregator.group_and_sum(assets)
        rates = await self._get_rates(set(currencies))
        valuations = [
            self._asset_valuation(asset, currency, rates[currency])
            for asset, currency in zip(assets, currencies)
        ]
        return valuations, self._portfolio_valuation(totals, rates)

    async def _value_totals(self, totals: Mapping[CurrencyCode, Decimal]) -> PortfolioValuation:
        if not totals:
            return PortfolioValuation(quote_currency=self._quote_currency)

        rates = await self._get_rates(totals.keys())
        return self._portfolio_valuation(totals, rates)

    def _resolve_currencies(self, assets: Sequence[AssetLike]) -> list[CurrencyCode]:
        currencies: list[CurrencyCode] = []
        for asset in assets:
            try:
                currencies.append(CurrencyCode.from_value(asset.currency))
            except ValuationError as e:
                raise e.with_context(asset_id=asset.id, currency=asset.currency)
        return currencies

    def _portfolio_valuation(
        self,
        totals: Mapping[CurrencyCode, Decimal],
        rates: Mapping[CurrencyCode, ExchangeRate],
    ) -> PortfolioValuation:
        buckets: dict[CurrencyCode, BucketValuation] = {}
        for currency, total in totals.items():
            rate = rates[currency]
            total_amount = to_decimal(total)
            buckets[currency] = BucketValuation(
                currency=currency,
                total_amount=total_amount,
                total_value_in_quote=value_in_quote(total_amount, rate.rate),
                quote_currency=rate.quote_currency,
                rate=rate.rate,
            )

        logger.debug(f"Valued {len(buckets)} currency bucket(s)")
        return PortfolioValuation(quote_currency=self._quote_currency, buckets=buckets)

    def _asset_valuation(
        self,
        asset: AssetLike,
        currency: CurrencyCode,
        rate: ExchangeRate,
    ) -> AssetValuation:
        amount = to_decimal(asset.amount)
        return AssetValuation(
            asset_id=asset.id,
            amount=amount,
            currency=currency,
            value_in_quote=value_in_quote(amount, rate.rate),
            quote_currency=rate.quote_currency,
            rate=rate.rate,
        )

    async def _get_rates(self, currencies: Iterable[CurrencyCode]) -> dict[CurrencyCode, ExchangeRate]:
        """Look up several currencies concurrently; first failure wins."""
        currencies = list(currencies)
        if not currencies:
            return {}

        tasks = [asyncio.create_task(self._get_bucket_rate(c)) for c in currencies]
        try:
            rates = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            # Collect the cancelled and failed siblings before re-raising
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        return dict(zip(currencies, rates))

    async def _get_bucket_rate(self, currency: CurrencyCode) -> ExchangeRate:
        try:
            return await self._get_rate(currency)
        except ValuationError as e:
            logger.warning(
                f"Rate lookup failed for {currency.ticker}: {e.message}",
                extra={"currency": currency.ticker},
            )
            raise e.with_context(currency=int(currency))

    async def _get_rate(self, currency: CurrencyCode) -> ExchangeRate:
        quote = self._quote_currency

        async def fetch() -> ExchangeRate:
            rate = await self._client.get_rate(currency, quote)
            if rate is None:
                raise NoQuoteAvailableError(currency.ticker, quote)
            return rate

        if self._cache is None:
            return await fetch()
        return await self._cache.get_or_fetch(currency, quote, fetch)

    async def _bounded(self, awaitable: Awaitable[T]) -> T:
        if self._timeout is None:
            return await awaitable

        try:
            return await asyncio.wait_for(awaitable, timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Valuation timed out after {self._timeout}s")
            raise ValuationTimeoutError(self._timeout) from None
