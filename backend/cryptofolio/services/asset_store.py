# backend/cryptofolio/services/asset_store.py
"""
Read-side persistence queries the valuation endpoints depend on.

AssetStore is a Protocol so tests and future backends can provide their
own implementation; SqlAlchemyAssetStore is the one the API uses.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from decimal import Decimal
from typing import Protocol

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from cryptofolio.models import Asset, CurrencyCode
from cryptofolio.services.valuation.aggregator import to_decimal

logger = logging.getLogger(__name__)


class AssetStore(Protocol):
    """Interface consumed by the asset and valuation endpoints."""

    def find_asset_by_id(self, asset_id: int) -> Asset | None:
        ...

    def find_assets_by_user_id(self, user_id: int) -> list[Asset]:
        ...

    def sum_amounts_by_currency(
        self,
        user_id: int,
        currencies: Iterable[CurrencyCode] | None = None,
    ) -> dict[int, Decimal]:
        ...


class SqlAlchemyAssetStore:
    """AssetStore backed by a SQLAlchemy session."""

    def __init__(self, db: Session) -> None:
        self._db = db

    def find_asset_by_id(self, asset_id: int) -> Asset | None:
        return self._db.get(Asset, asset_id)

    def find_assets_by_user_id(self, user_id: int) -> list[Asset]:
        return list(
            self._db.scalars(
                select(Asset)
                .where(Asset.user_id == user_id)
                .order_by(Asset.id)
            ).all()
        )

    def sum_amounts_by_currency(
        self,
        user_id: int,
        currencies: Iterable[CurrencyCode] | None = None,
    ) -> dict[int, Decimal]:
        """
        Total amount per currency code.

        Summed by the database, except on SQLite: it stores NUMERIC as a
        float and its SUM drifts past 15 significant digits, so there the
        rows are added up as Decimal instead.

        Args:
            user_id: Owner of the assets
            currencies: Restrict to these codes (None = every code present)

        Returns:
            Mapping of raw currency code to total. Codes without assets are
            absent. Keys are left as stored so unknown codes surface later
            as UnknownCurrencyError instead of disappearing here.
        """
        codes = None
        if currencies is not None:
            codes = [int(c) for c in currencies]
            if not codes:
                return {}

        if self._db.get_bind().dialect.name == "sqlite":
            totals = self._sum_row_by_row(user_id, codes)
        else:
            totals = self._sum_in_database(user_id, codes)
        logger.debug(f"Summed amounts for user {user_id}: {len(totals)} currency group(s)")
        return totals

    def _sum_in_database(self, user_id: int, codes: list[int] | None) -> dict[int, Decimal]:
        query = (
            select(Asset.currency, func.sum(Asset.amount))
            .where(Asset.user_id == user_id)
            .group_by(Asset.currency)
        )
        if codes is not None:
            query = query.where(Asset.currency.in_(codes))
        return {code: to_decimal(total) for code, total in self._db.execute(query).all()}

    def _sum_row_by_row(self, user_id: int, codes: list[int] | None) -> dict[int, Decimal]:
        query = select(Asset.currency, Asset.amount).where(Asset.user_id == user_id)
        if codes is not None:
            query = query.where(Asset.currency.in_(codes))

        totals: dict[int, Decimal] = {}
        for code, amount in self._db.execute(query).all():
            totals[code] = totals.get(code, Decimal(0)) + to_decimal(amount)
        return totals
