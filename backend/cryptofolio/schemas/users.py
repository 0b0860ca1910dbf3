# backend/cryptofolio/schemas/users.py
"""
User request/response schemas.

Defines Pydantic models for:
- Registration (the API token is returned exactly once)
- Profile update
- Profile responses, with the user's valued assets
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from cryptofolio.schemas.assets import AssetWithValue

# bcrypt only looks at the first 72 bytes
PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 72


def _normalize_name(v: str | None) -> str | None:
    if v is None:
        return None
    v = v.strip()
    if not v:
        raise ValueError("must not be blank")
    return v


# =============================================================================
# REQUEST SCHEMAS
# =============================================================================


class UserCreate(BaseModel):
    """Request body for registration."""

    email: EmailStr = Field(
        ...,
        description="User's email address",
        examples=["satoshi@example.com"],
    )
    password: str = Field(
        ...,
        min_length=PASSWORD_MIN_LENGTH,
        max_length=PASSWORD_MAX_LENGTH,
        description="Password (min 8 characters)",
        examples=["MySecurePassword123!"],
    )
    name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        examples=["Satoshi"],
    )
    surname: str | None = Field(
        None,
        max_length=100,
        examples=["Nakamoto"],
    )

    @field_validator("name", "surname")
    @classmethod
    def normalize_names(cls, v: str | None) -> str | None:
        return _normalize_name(v)


class UserUpdate(BaseModel):
    """
    Request body for updating the current user.

    All fields are optional; a new password is re-hashed.
    """

    email: EmailStr | None = Field(None, examples=["satoshi@example.com"])
    password: str | None = Field(
        None,
        min_length=PASSWORD_MIN_LENGTH,
        max_length=PASSWORD_MAX_LENGTH,
    )
    name: str | None = Field(None, min_length=1, max_length=100)
    surname: str | None = Field(None, max_length=100)

    @field_validator("name", "surname")
    @classmethod
    def normalize_names(cls, v: str | None) -> str | None:
        return _normalize_name(v)


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================


class UserResponse(BaseModel):
    """Public user profile. Never includes the password hash or the token."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    name: str | None
    surname: str | None
    created_at: datetime
    updated_at: datetime


class UserRegistered(UserResponse):
    """Registration response; the only place the API token is shown."""

    token: str = Field(..., description="API token, send as X-API-Token")


class UserDetail(UserResponse):
    """Current user with valued assets and per-currency totals."""

    assets: list[AssetWithValue] = Field(default_factory=list)
    total_assets: dict[str, str] = Field(
        default_factory=dict,
        examples=[{"BTC": "90178.540 USD"}],
    )
    total_value_in_quote: Decimal = Field(default=Decimal("0"))
    quote_currency: str = Field(..., examples=["USD"])
