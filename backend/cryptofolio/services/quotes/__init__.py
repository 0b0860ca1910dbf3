# backend/cryptofolio/services/quotes/__init__.py
"""
Exchange-rate quote clients and the rate cache.

Usage:
    from cryptofolio.services.quotes import CoinAPIQuoteClient, RateCache
"""

from cryptofolio.services.quotes.base import ExchangeRate, RateQuoteClient
from cryptofolio.services.quotes.cache import RateCache, RateCacheStats
from cryptofolio.services.quotes.coinapi import CoinAPIQuoteClient

__all__ = [
    "ExchangeRate",
    "RateQuoteClient",
    "RateCache",
    "RateCacheStats",
    "CoinAPIQuoteClient",
]
