"""Tests for the Money value object."""

from decimal import Decimal

import pytest

from bookstore.domain.exceptions import CurrencyMismatchError, NegativeMoneyError
from bookstore.domain.value_objects import Money, sum_money


class TestMoneyConstruction:
    """Tests for building Money values."""

    def test_from_decimal_converts_to_pence(self):
        assert Money.from_decimal(Decimal("12.99")).amount_pence == 1299
        assert Money.from_decimal("25.00").amount_pence == 2500

    def test_from_decimal_rounds_half_up(self):
        assert Money.from_decimal("0.005").amount_pence == 1
        assert Money.from_decimal("0.004").amount_pence == 0

    def test_negative_amount_rejected(self):
        with pytest.raises(NegativeMoneyError):
            Money(amount_pence=-1)

    def test_currency_is_uppercased(self):
        assert Money(100, "gbp").currency == "GBP"

    def test_str_formats_pounds(self):
        assert str(Money(1299)) == "£12.99"
        assert str(Money(2000)) == "£20.00"

    def test_to_decimal_has_two_places(self):
        assert Money(250).to_decimal() == Decimal("2.50")
        assert str(Money(250).to_decimal()) == "2.50"


class TestMoneyArithmetic:
    """Tests for Money arithmetic."""

    def test_add_and_multiply(self):
        assert Money(1000) * 2 + Money(500) == Money(2500)
        assert 3 * Money(100) == Money(300)

    def test_subtract_below_zero_raises(self):
        with pytest.raises(NegativeMoneyError):
            Money(100) - Money(200)

    def test_clamp_subtract_floors_at_zero(self):
        assert Money(100).clamp_subtract(Money(200)) == Money.zero()
        assert Money(300).clamp_subtract(Money(200)) == Money(100)

    def test_currency_mismatch_raises(self):
        with pytest.raises(CurrencyMismatchError):
            Money(100, "GBP") + Money(100, "EUR")

    def test_percentage_rounds_half_up(self):
        assert Money(2500).percentage(Decimal("10")) == Money(250)
        assert Money(5).percentage(Decimal("10")) == Money(1)
        assert Money(1999).percentage(Decimal("12.5")) == Money(250)

    def test_ordering(self):
        assert Money(100) < Money(200)
        assert max(Money(100), Money(300)) == Money(300)

    def test_sum_money(self):
        assert sum_money([]) == Money.zero()
        assert sum_money([Money(1000), Money(1000), Money(500)]) == Money(2500)
