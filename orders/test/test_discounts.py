"""
Unit tests for coupon resolution.
"""
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from django.test import SimpleTestCase

from orders.domain.discounts import CouponDefinition, DiscountEngine
from orders.domain.errors import InvalidCoupon
from orders.domain.money import Money
from orders.domain.statuses import DiscountType


def coupon(kind, value, **kwargs) -> CouponDefinition:
    return CouponDefinition(code="SAVE", discount_type=kind, discount_value=Decimal(value), **kwargs)


class DiscountEngineTest(SimpleTestCase):
    """Tests for DiscountEngine."""

    def setUp(self):
        self.engine = DiscountEngine()

    def test_fixed_discount_clamped_to_subtotal(self):
        """Test that a fixed coupon larger than the subtotal never goes negative."""
        discount = self.engine.resolve(Money.of("1000"), coupon(DiscountType.FIXED, "1500"))
        self.assertEqual(discount.amount, Decimal("1000.00"))

    def test_percentage_discount(self):
        discount = self.engine.resolve(Money.of("999"), coupon(DiscountType.PERCENTAGE, "10"))
        self.assertEqual(discount.amount, Decimal("99.90"))

    def test_percentage_rounds_half_to_even(self):
        """Test 1.25 * 10% = 0.125 -> 0.12 and 1.35 * 10% = 0.135 -> 0.14."""
        self.assertEqual(self.engine.resolve(Money.of("1.25"), coupon("percentage", "10")), Money.of("0.12"))
        self.assertEqual(self.engine.resolve(Money.of("1.35"), coupon("percentage", "10")), Money.of("0.14"))

    def test_percentage_over_hundred_clamped(self):
        discount = self.engine.resolve(Money.of("250"), coupon("percentage", "150"))
        self.assertEqual(discount, Money.of("250"))

    def test_fixed_discount_below_subtotal(self):
        self.assertEqual(self.engine.resolve(Money.of("500"), coupon("fixed", "75.50")), Money.of("75.50"))

    def test_unknown_discount_type_fails(self):
        """Test that unknown kinds are rejected, never silently zeroed."""
        with self.assertRaises(InvalidCoupon):
            self.engine.resolve(Money.of("100"), coupon("bogo", "1"))

    def test_negative_value_fails(self):
        with self.assertRaises(InvalidCoupon):
            self.engine.resolve(Money.of("100"), coupon("fixed", "-5"))

    def test_eligibility_checks(self):
        """Test active flag, expiry and minimum purchase."""
        now = datetime(2024, 3, 1, tzinfo=timezone.utc)
        subtotal = Money.of("100")
        cases = [
            coupon("fixed", "10", is_active=False),
            coupon("fixed", "10", expires_at=now - timedelta(days=1)),
            coupon("fixed", "10", min_purchase=Decimal("500")),
        ]
        for case in cases:
            with self.subTest(coupon=case), self.assertRaises(InvalidCoupon):
                self.engine.check_eligibility(case, subtotal, now)
        self.engine.check_eligibility(coupon("fixed", "10", expires_at=now + timedelta(days=1)), subtotal, now)

    def test_apply_records_resolved_amount(self):
        application = self.engine.apply(Money.of("200"), coupon("percentage", "12.5"))
        self.assertEqual(application.discount_type, DiscountType.PERCENTAGE)
        self.assertEqual(application.discount_value, Decimal("12.5"))
        self.assertEqual(application.discount_applied, Money.of("25.00"))
