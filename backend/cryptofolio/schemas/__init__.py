# backend/cryptofolio/schemas/__init__.py
"""
Pydantic schemas for API request/response validation.

- assets: Asset CRUD and valued asset listings
- errors: Error response formats
- users: Registration and profile
- valuation: Per-currency portfolio summary

Usage:
    from cryptofolio.schemas import AssetCreate, AssetResponse
    from cryptofolio.schemas import UserCreate, UserRegistered
"""

from cryptofolio.schemas.assets import (
    AssetCreate,
    AssetUpdate,
    AssetResponse,
    AssetWithValue,
    AssetListResponse,
)
from cryptofolio.schemas.errors import ErrorDetail, ValidationErrorDetail
from cryptofolio.schemas.users import (
    UserCreate,
    UserUpdate,
    UserResponse,
    UserRegistered,
    UserDetail,
)
from cryptofolio.schemas.valuation import (
    CurrencyBucketResponse,
    PortfolioSummaryResponse,
)

__all__ = [
    # Assets
    "AssetCreate",
    "AssetUpdate",
    "AssetResponse",
    "AssetWithValue",
    "AssetListResponse",
    # Errors
    "ErrorDetail",
    "ValidationErrorDetail",
    # Users
    "UserCreate",
    "UserUpdate",
    "UserResponse",
    "UserRegistered",
    "UserDetail",
    # Valuation
    "CurrencyBucketResponse",
    "PortfolioSummaryResponse",
]
