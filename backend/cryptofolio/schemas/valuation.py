# backend/cryptofolio/schemas/valuation.py
"""
Pydantic schemas for portfolio valuation responses.

Built from the engine's PortfolioValuation dataclass via from_valuation().
"""

from decimal import Decimal

from pydantic import BaseModel, Field

from cryptofolio.services.valuation import PortfolioValuation


class CurrencyBucketResponse(BaseModel):
    """Aggregate of every asset held in one currency."""

    currency: int = Field(..., description="Currency code")
    ticker: str = Field(..., examples=["BTC"])
    total_amount: Decimal = Field(..., description="Exact sum of amounts")
    rate: Decimal = Field(..., description="Rate used (1 unit = rate quote currency)")
    total_value_in_quote: Decimal = Field(..., description="total_amount * rate, 3 decimal places")
    display_value: str = Field(..., examples=["90178.540 USD"])


class PortfolioSummaryResponse(BaseModel):
    """Per-currency valuation of the current user's holdings."""

    quote_currency: str = Field(..., examples=["USD"])
    buckets: list[CurrencyBucketResponse] = Field(
        ...,
        description="One entry per currency held, ordered by currency code",
    )
    total_value_in_quote: Decimal = Field(...)
    display_total: str = Field(..., examples=["90178.540 USD"])

    @classmethod
    def from_valuation(cls, valuation: PortfolioValuation, display_total: str) -> "PortfolioSummaryResponse":
        buckets = [
            CurrencyBucketResponse(
                currency=int(bucket.currency),
                ticker=bucket.currency.ticker,
                total_amount=bucket.total_amount,
                rate=bucket.rate,
                total_value_in_quote=bucket.total_value_in_quote,
                display_value=bucket.display_value,
            )
            for _, bucket in sorted(valuation.buckets.items())
        ]
        return cls(
            quote_currency=valuation.quote_currency,
            buckets=buckets,
            total_value_in_quote=valuation.total_value_in_quote,
            display_total=display_total,
        )
