# tests/services/test_aggregator.py
"""
Tests for AssetAggregator.
"""

from decimal import Decimal

import pytest

from cryptofolio.models import CurrencyCode
from cryptofolio.services.exceptions import UnknownCurrencyError
from cryptofolio.services.valuation import AssetAggregator
from tests.conftest import AssetStub


class TestGroupAndSum:
    """Tests for in-process bucket totals."""

    def test_groups_by_currency(self):
        """Should produce one total per currency present."""
        totals = AssetAggregator.group_and_sum([
            AssetStub(1, CurrencyCode.BTC, "1.99"),
            AssetStub(2, CurrencyCode.ETH, "10"),
            AssetStub(3, CurrencyCode.BTC, "3.01"),
        ])

        assert totals == {
            CurrencyCode.BTC: Decimal("5.00"),
            CurrencyCode.ETH: Decimal("10"),
        }

    def test_empty_input(self):
        """Should return an empty mapping for no assets."""
        assert AssetAggregator.group_and_sum([]) == {}

    def test_exact_decimal_sum(self):
        """Should add without floating-point drift."""
        totals = AssetAggregator.group_and_sum([
            AssetStub(1, CurrencyCode.IOTA, "0.1"),
            AssetStub(2, CurrencyCode.IOTA, "0.2"),
        ])

        assert totals[CurrencyCode.IOTA] == Decimal("0.3")

    def test_order_independent(self):
        """Should give the same totals whatever the input order."""
        assets = [
            AssetStub(1, CurrencyCode.BTC, "0.00000001"),
            AssetStub(2, CurrencyCode.ETH, "2.5"),
            AssetStub(3, CurrencyCode.BTC, "12345678.12345678"),
        ]

        assert AssetAggregator.group_and_sum(assets) == AssetAggregator.group_and_sum(reversed(assets))

    def test_negative_amounts_pass_through(self):
        """Should sum negative amounts arithmetically instead of failing."""
        totals = AssetAggregator.group_and_sum([
            AssetStub(1, CurrencyCode.BTC, "2"),
            AssetStub(2, CurrencyCode.BTC, "-0.5"),
        ])

        assert totals[CurrencyCode.BTC] == Decimal("1.5")

    def test_unknown_currency(self):
        """Should raise UnknownCurrencyError naming the asset."""
        with pytest.raises(UnknownCurrencyError) as exc_info:
            AssetAggregator.group_and_sum([AssetStub(8, 99, "1")])

        assert exc_info.value.asset_id == 8
        assert exc_info.value.currency_code == 99


class TestFromTotals:
    """Tests for totals summed by storage."""

    def test_normalizes_keys_and_values(self):
        """Should map raw codes to CurrencyCode and values to Decimal."""
        totals = AssetAggregator.from_totals({1: Decimal("5.00000000"), 3: 7})

        assert totals == {CurrencyCode.BTC: Decimal("5"), CurrencyCode.IOTA: Decimal("7")}
        assert all(isinstance(v, Decimal) for v in totals.values())

    def test_unknown_code(self):
        """Should reject codes without a ticker."""
        with pytest.raises(UnknownCurrencyError):
            AssetAggregator.from_totals({4: Decimal("1")})
