# backend/cryptofolio/services/valuation/types.py
"""
Data types for the valuation engine.

These dataclasses are NOT Pydantic schemas - those are defined in
cryptofolio/schemas/ for API serialization.

Design Principles:
- Immutable value objects (frozen=True)
- Decimal for ALL amounts and values (never float)
- Formatting to "<value> USD" strings happens only at presentation time

Type Hierarchy:
    AssetLike           - What the engine reads from a stored asset
    AssetValuation      - One asset valued in the quote currency
    BucketValuation     - One currency bucket of a portfolio
    PortfolioValuation  - All buckets of a portfolio
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, localcontext
from typing import Protocol

from cryptofolio.models import CurrencyCode
from cryptofolio.services.constants import (
    VALUE_DECIMAL_PLACES,
    VALUE_QUANTUM,
    VALUE_ROUNDING,
    ZERO,
)


class AssetLike(Protocol):
    """Read-only view of a stored asset; the Asset model satisfies it."""

    id: int
    currency: int
    amount: Decimal


def quantize_value(value: Decimal) -> Decimal:
    """Round a fiat value to 3 decimal places, half-up."""
    return value.quantize(VALUE_QUANTUM, rounding=VALUE_ROUNDING)


def value_in_quote(amount: Decimal, rate: Decimal) -> Decimal:
    """
    Multiply an amount by a rate and round once to 3 places, half-up.

    The product is computed with enough precision to be exact, so a rate
    with many significant digits is not first rounded half-even to the
    default 28-digit context.
    """
    with localcontext() as ctx:
        digits = len(amount.as_tuple().digits) + len(rate.as_tuple().digits)
        ctx.prec = max(ctx.prec, digits)
        return quantize_value(amount * rate)


def format_quote_value(value: Decimal, quote_currency: str) -> str:
    """
    Render a value for display, e.g. ``"35891.059 USD"``.

    Always shows exactly 3 decimal places.
    """
    return f"{quantize_value(value):.{VALUE_DECIMAL_PLACES}f} {quote_currency}"


@dataclass(frozen=True)
class AssetValuation:
    """
    Value of a single asset.

    Attributes:
        asset_id: Database ID of the asset
        amount: Held amount of the crypto currency
        currency: Crypto currency of the asset
        value_in_quote: amount * rate, rounded to 3 places
        quote_currency: Fiat currency of the value
        rate: Rate the value was computed with
    """
    asset_id: int
    amount: Decimal
    currency: CurrencyCode
    value_in_quote: Decimal
    quote_currency: str
    rate: Decimal

    @property
    def display_value(self) -> str:
        return format_quote_value(self.value_in_quote, self.quote_currency)


@dataclass(frozen=True)
class BucketValuation:
    """
    Aggregate value of every asset sharing one currency.

    Attributes:
        currency: Crypto currency of the bucket
        total_amount: Exact sum of the bucket's amounts
        total_value_in_quote: total_amount * rate, rounded to 3 places
        quote_currency: Fiat currency of the value
        rate: Rate the value was computed with
    """
    currency: CurrencyCode
    total_amount: Decimal
    total_value_in_quote: Decimal
    quote_currency: str
    rate: Decimal

    @property
    def display_value(self) -> str:
        return format_quote_value(self.total_value_in_quote, self.quote_currency)


@dataclass(frozen=True)
class PortfolioValuation:
    """
    Valuation of a user's holdings, one bucket per currency held.

    Currencies without holdings have no bucket (they are not reported
    as zero).
    """
    quote_currency: str
    buckets: dict[CurrencyCode, BucketValuation] = field(default_factory=dict)

    @property
    def total_value_in_quote(self) -> Decimal:
        """Sum of the bucket values (already rounded, so no re-rounding)."""
        return sum((b.total_value_in_quote for b in self.buckets.values()), ZERO)

    @property
    def is_empty(self) -> bool:
        return not self.buckets

    def __getitem__(self, currency: CurrencyCode) -> BucketValuation:
        return self.buckets[currency]

    def __contains__(self, currency: object) -> bool:
        return currency in self.buckets

    def __len__(self) -> int:
        return len(self.buckets)
