"""
Fixed-precision money value object.
"""
from __future__ import annotations

from decimal import ROUND_HALF_EVEN, Decimal, InvalidOperation

from orders.domain.errors import InvariantViolation

CENT = Decimal("0.01")


def round2(value: Decimal) -> Decimal:
    """Round decimal to two fraction digits using banker's rounding."""
    return value.quantize(CENT, rounding=ROUND_HALF_EVEN)


class Money:
    """Amount stored as integer minor units (paise/cents)."""

    __slots__ = ("_minor",)

    def __init__(self, minor_units: int = 0):
        if not isinstance(minor_units, int) or isinstance(minor_units, bool):
            raise TypeError("Money expects integer minor units")
        if minor_units < 0:
            raise InvariantViolation(f"Money cannot be negative: {minor_units} minor units")
        self._minor = minor_units

    @classmethod
    def zero(cls) -> Money:
        return cls(0)

    @classmethod
    def of(cls, value: Decimal | int | str) -> Money:
        """Build Money from a decimal amount, rejecting more than two fraction digits."""
        try:
            amount = Decimal(str(value))
        except InvalidOperation as exc:
            raise InvariantViolation(f"Not a monetary amount: {value!r}") from exc
        if not amount.is_finite():
            raise InvariantViolation(f"Not a monetary amount: {value!r}")
        if amount != round2(amount):
            raise InvariantViolation(f"Amount {amount} has more than two fraction digits")
        return cls(int(amount * 100))

    @classmethod
    def rounded(cls, value: Decimal) -> Money:
        """Build Money from an arbitrary-precision decimal, rounding half-to-even."""
        return cls(int(round2(value) * 100))

    @property
    def minor_units(self) -> int:
        return self._minor

    @property
    def amount(self) -> Decimal:
        """Decimal amount with exactly two fraction digits."""
        return (Decimal(self._minor) / 100).quantize(CENT)

    def __add__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        return Money(self._minor + other._minor)

    def __sub__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        result = self._minor - other._minor
        if result < 0:
            raise InvariantViolation(f"Subtracting {other} from {self} gives a negative amount")
        return Money(result)

    def __mul__(self, quantity: int) -> Money:
        if not isinstance(quantity, int) or isinstance(quantity, bool):
            return NotImplemented
        return Money(self._minor * quantity)

    __rmul__ = __mul__

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        return self._minor == other._minor

    def __lt__(self, other: Money) -> bool:
        return self._minor < other._minor

    def __le__(self, other: Money) -> bool:
        return self._minor <= other._minor

    def __gt__(self, other: Money) -> bool:
        return self._minor > other._minor

    def __ge__(self, other: Money) -> bool:
        return self._minor >= other._minor

    def __hash__(self) -> int:
        return hash(self._minor)

    def __bool__(self) -> bool:
        return self._minor != 0

    def __str__(self) -> str:
        return str(self.amount)

    def __repr__(self) -> str:
        return f"Money('{self.amount}')"


def total_of(amounts) -> Money:
    """Sum an iterable of Money."""
    total = Money.zero()
    for amount in amounts:
        total = total + amount
    return total
