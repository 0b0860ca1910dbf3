# backend/cryptofolio/services/valuation/__init__.py
"""
Valuation Service Package.

Computes fiat values for crypto holdings:
- Single asset valuation (ValuationEngine.value_asset)
- Per-asset listing with shared rates (ValuationEngine.value_assets)
- Per-currency portfolio summary (ValuationEngine.value_portfolio)

Usage:
    from cryptofolio.services.valuation import ValuationEngine

    engine = ValuationEngine(quote_client=client, rate_cache=cache)
    result = await engine.value_asset(asset)
    result.display_value  # "35891.059 USD"

Architecture:
    valuation/
    ├── __init__.py      # This file - package exports
    ├── types.py         # Value objects and rounding helpers
    ├── aggregator.py    # AssetAggregator (currency buckets)
    └── engine.py        # ValuationEngine (orchestrator)

Data Flow:
    Assets → AssetAggregator → {currency: total amount}
    Currencies → RateCache → RateQuoteClient → ExchangeRate
    Totals × Rates → BucketValuation → PortfolioValuation
"""

from cryptofolio.services.valuation.aggregator import AssetAggregator
from cryptofolio.services.valuation.engine import ValuationEngine
from cryptofolio.services.valuation.types import (
    AssetLike,
    AssetValuation,
    BucketValuation,
    PortfolioValuation,
    format_quote_value,
    quantize_value,
    value_in_quote,
)

__all__ = [
    "ValuationEngine",
    "AssetAggregator",
    "AssetLike",
    "AssetValuation",
    "BucketValuation",
    "PortfolioValuation",
    "format_quote_value",
    "quantize_value",
    "value_in_quote",
]
