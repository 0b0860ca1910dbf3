# backend/cryptofolio/schemas/assets.py
"""
Pydantic schemas for crypto assets.

These schemas define:
- What data clients must send (Create)
- What data clients can update (Update)
- What data the API returns (Response, WithValue, List)

Amounts and values are Decimal and serialize as strings in JSON, so no
precision is lost on the way to the client.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from cryptofolio.models import ASSET_LABEL_MAX_LENGTH, CurrencyCode


def _ticker_for(code: int) -> str | None:
    try:
        return CurrencyCode(code).ticker
    except ValueError:
        return None


# =============================================================================
# REQUEST SCHEMAS
# =============================================================================

class AssetCreate(BaseModel):
    """Request body for creating an asset."""

    label: str = Field(
        ...,
        min_length=1,
        max_length=ASSET_LABEL_MAX_LENGTH,
        examples=["Cold wallet", "Exchange account"],
        description="Free-text label for the holding"
    )

    currency: CurrencyCode = Field(
        ...,
        examples=[1],
        description="Currency code: 1 for BTC, 2 for ETH, 3 for IOTA"
    )

    amount: Decimal = Field(
        ...,
        gt=0,
        max_digits=18,
        decimal_places=8,
        examples=["1.99", "0.00012345"],
        description="Amount held (must be positive)"
    )

    @field_validator("label")
    @classmethod
    def normalize_label(cls, v: str) -> str:
        """Trim whitespace; a blank label is rejected."""
        v = v.strip()
        if not v:
            raise ValueError("label must not be blank")
        return v


class AssetUpdate(BaseModel):
    """
    Request body for updating an asset.

    All fields are optional; only sent fields change.
    """

    label: str | None = Field(default=None, min_length=1, max_length=ASSET_LABEL_MAX_LENGTH)
    currency: CurrencyCode | None = Field(default=None)
    amount: Decimal | None = Field(default=None, gt=0, max_digits=18, decimal_places=8)

    @field_validator("label")
    @classmethod
    def normalize_label(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip()
        if not v:
            raise ValueError("label must not be blank")
        return v


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================

class AssetResponse(BaseModel):
    """An asset as stored."""

    model_config = ConfigDict(from_attributes=True)

    id: int = Field(..., description="Unique identifier")
    label: str = Field(...)
    currency: int = Field(..., description="Currency code (1 BTC, 2 ETH, 3 IOTA)")
    amount: Decimal = Field(..., description="Amount held")
    created_at: datetime = Field(...)
    updated_at: datetime = Field(...)

    @computed_field
    @property
    def ticker(self) -> str | None:
        """Ticker of the currency, None for unknown codes."""
        return _ticker_for(self.currency)


class AssetWithValue(AssetResponse):
    """An asset with its current value in the quote currency."""

    value_in_quote: Decimal = Field(..., description="amount * rate, 3 decimal places")
    quote_currency: str = Field(..., examples=["USD"])
    display_value: str = Field(..., examples=["35891.059 USD"])


class AssetListResponse(BaseModel):
    """All assets of the current user, valued, with per-currency totals."""

    data: list[AssetWithValue]
    total_assets: dict[str, str] = Field(
        ...,
        description="Display value per ticker, only for currencies held",
        examples=[{"BTC": "90178.540 USD"}],
    )
    total_value_in_quote: Decimal = Field(..., description="Sum of the per-currency values")
    quote_currency: str = Field(..., examples=["USD"])
