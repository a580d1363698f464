"""Value Objects for the domain layer.

Value objects are immutable objects that are defined by their attributes
rather than identity. They are interchangeable when their values are equal.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Self

from bookstore.domain.base import ValueObject
from bookstore.domain.exceptions import CurrencyMismatchError, NegativeMoneyError

TWO_PLACES = Decimal("0.01")


# ============================================================================
# Money Value Object
# ============================================================================


@dataclass(frozen=True, order=True)
class Money(ValueObject):
    """Represents a non-negative monetary value.

    Money is stored in the smallest currency unit (pence) so that order
    totals, line prices and discounts reconcile exactly.

    Attributes:
        amount_pence: Amount in smallest currency unit.
        currency: ISO 4217 currency code.
    """

    amount_pence: int
    currency: str = "GBP"

    def __post_init__(self) -> None:
        """Validate money constraints."""
        if self.amount_pence < 0:
            raise NegativeMoneyError(self.amount_pence)
        object.__setattr__(self, "currency", self.currency.upper())

    @classmethod
    def zero(cls, currency: str = "GBP") -> Self:
        """Create zero amount money."""
        return cls(amount_pence=0, currency=currency)

    @classmethod
    def from_decimal(cls, amount: Decimal | int | str, currency: str = "GBP") -> Self:
        """Create money from an amount in major units.

        Args:
            amount: Amount in pounds (e.g. ``Decimal("12.99")``).
            currency: Currency code.

        Returns:
            Money instance rounded half-up to the nearest penny.
        """
        pence = int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
        return cls(amount_pence=pence, currency=currency)

    def to_decimal(self) -> Decimal:
        """Convert to a two-place decimal amount in major units."""
        return (Decimal(self.amount_pence) / 100).quantize(TWO_PLACES)

    def percentage(self, percent: Decimal) -> "Money":
        """Return ``percent`` percent of this amount, rounded half-up.

        Args:
            percent: Percentage as a decimal (``Decimal("10")`` for 10%).

        Returns:
            New Money with the share.
        """
        share = (Decimal(self.amount_pence) * Decimal(percent) / 100).quantize(
            Decimal("1"), rounding=ROUND_HALF_UP
        )
        return Money(amount_pence=int(share), currency=self.currency)

    def _check_currency(self, other: "Money") -> None:
        if self.currency != other.currency:
            raise CurrencyMismatchError(self.currency, other.currency)

    def __add__(self, other: "Money") -> "Money":
        """Add two money amounts.

        Raises:
            CurrencyMismatchError: If currencies don't match.
        """
        self._check_currency(other)
        return Money(amount_pence=self.amount_pence + other.amount_pence, currency=self.currency)

    def __sub__(self, other: "Money") -> "Money":
        """Subtract money amounts.

        Raises:
            CurrencyMismatchError: If currencies don't match.
            NegativeMoneyError: If result would be negative.
        """
        self._check_currency(other)
        return Money(amount_pence=self.amount_pence - other.amount_pence, currency=self.currency)

    def __mul__(self, quantity: int) -> "Money":
        return Money(amount_pence=self.amount_pence * quantity, currency=self.currency)

    def __rmul__(self, quantity: int) -> "Money":
        return self.__mul__(quantity)

    def __str__(self) -> str:
        """Return formatted string representation (e.g. '£12.99')."""
        symbol = {"USD": "$", "EUR": "€", "GBP": "£"}.get(self.currency, "")
        return f"{symbol}{self.to_decimal():.2f}"

    def is_zero(self) -> bool:
        """Check if amount is zero."""
        return self.amount_pence == 0

    def clamp_subtract(self, other: "Money") -> "Money":
        """Subtract, flooring the result at zero instead of raising."""
        self._check_currency(other)
        return Money(
            amount_pence=max(0, self.amount_pence - other.amount_pence),
            currency=self.currency,
        )


def sum_money(amounts: list[Money], currency: str = "GBP") -> Money:
    """Sum a list of money amounts, returning zero for an empty list."""
    total = Money.zero(currency)
    for amount in amounts:
        total = total + amount
    return total
