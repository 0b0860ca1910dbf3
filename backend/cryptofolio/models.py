# backend/cryptofolio/models.py
import enum
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import String, DateTime, ForeignKey, Numeric, SmallInteger
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from cryptofolio.services.exceptions import UnknownCurrencyError


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CurrencyCode(enum.IntEnum):
    """
    Crypto currencies an asset can be held in.

    The integer value is what gets stored; the ticker is what the
    quote provider understands.
    """
    BTC = 1
    ETH = 2
    IOTA = 3

    @property
    def ticker(self) -> str:
        return _TICKERS[self]

    @classmethod
    def from_value(cls, value: "int | CurrencyCode") -> "CurrencyCode":
        """
        Resolve a stored currency code.

        Only integers are accepted; 1.9, "1" and True are not codes.

        Raises:
            UnknownCurrencyError: If the code has no ticker mapping
        """
        if isinstance(value, bool) or not isinstance(value, int):
            raise UnknownCurrencyError(value)
        try:
            return cls(value)
        except ValueError:
            raise UnknownCurrencyError(value) from None


_TICKERS: dict[CurrencyCode, str] = {
    CurrencyCode.BTC: "BTC",
    CurrencyCode.ETH: "ETH",
    CurrencyCode.IOTA: "IOTA",
}

# Column size of Asset.label, shared with the request schemas
ASSET_LABEL_MAX_LENGTH = 25


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    # API token (UUID4 string) used to authenticate every request
    token: Mapped[str] = mapped_column(String(36), unique=True, index=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    hashed_password: Mapped[str] = mapped_column(String)
    name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    surname: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    # Relationship: One User has Many Assets
    assets: Mapped[list["Asset"]] = relationship(
        back_populates="owner",
        cascade="all, delete-orphan",
    )


class Asset(Base):
    """
    A holding of one crypto currency owned by a user.

    `currency` stores the CurrencyCode integer as-is. Values outside the
    enum are not rejected here; valuation reports them as unknown.
    """
    __tablename__ = "assets"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    label: Mapped[str] = mapped_column(String(ASSET_LABEL_MAX_LENGTH))
    currency: Mapped[int] = mapped_column(SmallInteger, index=True)

    # Numeric(18, 8) keeps satoshi-level precision
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 8))

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    owner: Mapped["User"] = relationship(back_populates="assets")
