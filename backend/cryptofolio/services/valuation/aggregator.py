# backend/cryptofolio/services/valuation/aggregator.py
"""
Groups assets into currency buckets and sums their amounts.

Addition is exact Decimal arithmetic, so the order assets arrive in
does not change the result.
"""

from collections.abc import Iterable, Mapping
from decimal import Decimal

from cryptofolio.models import CurrencyCode
from cryptofolio.services.constants import ZERO
from cryptofolio.services.exceptions import UnknownCurrencyError
from cryptofolio.services.valuation.types import AssetLike


def to_decimal(value: Decimal | int | str) -> Decimal:
    """Convert an amount to Decimal without going through float."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


class AssetAggregator:
    """Builds per-currency amount totals for portfolio valuation."""

    @staticmethod
    def group_and_sum(assets: Iterable[AssetLike]) -> dict[CurrencyCode, Decimal]:
        """
        Sum amounts per currency.

        Args:
            assets: Assets to group, in any order

        Returns:
            Mapping of currency to total amount. Only currencies that have
            at least one asset appear; empty input gives an empty mapping.

        Raises:
            UnknownCurrencyError: If an asset has an unmapped currency code,
                annotated with that asset's id
        """
        totals: dict[CurrencyCode, Decimal] = {}
        for asset in assets:
            try:
                currency = CurrencyCode.from_value(asset.currency)
            except UnknownCurrencyError as e:
                raise e.with_context(asset_id=asset.id, currency=asset.currency)
            totals[currency] = totals.get(currency, ZERO) + to_decimal(asset.amount)
        return totals

    @staticmethod
    def from_totals(totals: Mapping[int, Decimal | int | str]) -> dict[CurrencyCode, Decimal]:
        """
        Normalize totals computed elsewhere (e.g. SQL SUM ... GROUP BY).

        Raises:
            UnknownCurrencyError: If a key is not a known currency code
        """
        normalized: dict[CurrencyCode, Decimal] = {}
        for code, total in totals.items():
            try:
                currency = CurrencyCode.from_value(code)
            except UnknownCurrencyError as e:
                raise e.with_context(currency=code)
            normalized[currency] = to_decimal(total)
        return normalized
