from decimal import Decimal

import pytest

from src.shared.utils.money import round_money


class TestRoundMoney:
    """Tests for round_money function."""

    def test_round_half_up(self):
        """Test ROUND_HALF_UP behavior."""
        assert round_money(10.125) == Decimal("10.13")
        assert round_money(10.124) == Decimal("10.12")
        assert round_money(10.145) == Decimal("10.15")

    def test_from_decimal(self):
        assert round_money(Decimal("50")) == Decimal("50.00")
        assert round_money(Decimal("49.995")) == Decimal("50.00")

    def test_from_string_and_int(self):
        assert round_money("0.001") == Decimal("0.00")
        assert round_money(0) == Decimal("0.00")

    def test_negative_amount_rejected(self):
        """Deposits are never negative."""
        with pytest.raises(ValueError):
            round_money(Decimal("-1"))

    def test_precision(self):
        """Test that result always has 2 decimal places."""
        assert str(round_money(50)) == "50.00"
        assert str(round_money(10.1)) == "10.10"
