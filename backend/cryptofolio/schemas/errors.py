# backend/cryptofolio/schemas/errors.py
"""
Pydantic schemas for error responses.

Every error leaves the API in one of these shapes; the exception handlers
in main.py build them. Provider error bodies are never copied into them.
"""

from pydantic import BaseModel, Field


class ErrorDetail(BaseModel):
    """Standard error response format."""

    error: str = Field(
        ...,
        description="Error type (e.g. 'AssetNotFoundError', 'ProviderServerError')"
    )
    message: str = Field(
        ...,
        description="Human-readable error message"
    )
    details: dict | None = Field(
        default=None,
        description="Additional error context (asset id, currency, retry_after...)"
    )


class ValidationErrorDetail(BaseModel):
    """Request validation failure (422), one entry per invalid field."""

    error: str = Field(default="ValidationError")
    message: str = Field(default="Request validation failed")
    details: list[dict] = Field(
        ...,
        description="List of validation errors"
    )
