"""
Unit tests for the Money value object.
"""
from decimal import Decimal

from django.test import SimpleTestCase

from orders.domain.errors import InvariantViolation
from orders.domain.money import Money, round2, total_of


class MoneyTest(SimpleTestCase):
    """Tests for Money."""

    def test_amount_has_two_fraction_digits(self):
        """Test that amounts are exposed with exactly two decimals."""
        self.assertEqual(Money.of("19.9").amount, Decimal("19.90"))
        self.assertEqual(Money.of(5).amount, Decimal("5.00"))
        self.assertEqual(Money.of("19.99").minor_units, 1999)

    def test_more_than_two_fraction_digits_rejected(self):
        """Test that sub-cent amounts are not silently rounded."""
        with self.assertRaises(InvariantViolation):
            Money.of("10.005")

    def test_non_numeric_rejected(self):
        for value in ("abc", "NaN", "Infinity"):
            with self.subTest(value=value), self.assertRaises(InvariantViolation):
                Money.of(value)

    def test_negative_money_rejected(self):
        """Test that negative amounts are invariant violations."""
        with self.assertRaises(InvariantViolation):
            Money.of("-1.00")
        with self.assertRaises(InvariantViolation):
            Money.of("1.00") - Money.of("1.01")

    def test_addition_is_exact(self):
        """Test that there is no floating point drift."""
        self.assertEqual(Money.of("0.10") + Money.of("0.20"), Money.of("0.30"))
        self.assertEqual(total_of(Money.of("0.01") for _ in range(1000)), Money.of("10.00"))

    def test_multiplication_by_quantity(self):
        self.assertEqual(Money.of("33.33") * 3, Money.of("99.99"))
        self.assertEqual(3 * Money.of("33.33"), Money.of("99.99"))

    def test_rounded_uses_bankers_rounding(self):
        """Test round-half-to-even."""
        self.assertEqual(Money.rounded(Decimal("0.125")), Money.of("0.12"))
        self.assertEqual(Money.rounded(Decimal("0.135")), Money.of("0.14"))
        self.assertEqual(round2(Decimal("2.675")), Decimal("2.68"))
        self.assertEqual(round2(Decimal("2.665")), Decimal("2.66"))

    def test_comparisons(self):
        self.assertLess(Money.of("1.00"), Money.of("1.01"))
        self.assertEqual(min(Money.of("5"), Money.of("3")), Money.of("3"))
        self.assertFalse(Money.zero())
        self.assertEqual(str(Money.of("7.5")), "7.50")
