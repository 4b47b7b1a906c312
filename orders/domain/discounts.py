"""
Coupon resolution.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation

from orders.domain.errors import InvalidCoupon
from orders.domain.money import Money
from orders.domain.statuses import DiscountType


@dataclass(frozen=True)
class CouponDefinition:
    """Coupon as defined in the coupon store."""
    code: str
    discount_type: str
    discount_value: Decimal
    min_purchase: Decimal = Decimal("0")
    expires_at: datetime | None = None
    is_active: bool = True


@dataclass(frozen=True)
class CouponApplication:
    """Coupon applied to an order with the server-side resolved amount."""
    code: str
    discount_type: DiscountType
    discount_value: Decimal
    discount_applied: Money


class DiscountEngine:
    """Computes discount amounts; results are rounded half-to-even."""

    def resolve(self, subtotal: Money, coupon: CouponDefinition) -> Money:
        """Discount for ``subtotal``, clamped to ``[0, subtotal]``."""
        try:
            kind = DiscountType(coupon.discount_type)
        except ValueError:
            raise InvalidCoupon(
                f"Coupon {coupon.code} has unknown discount type {coupon.discount_type!r}"
            ) from None
        value = self._value(coupon)

        if kind == DiscountType.PERCENTAGE:
            discount = Money.rounded(subtotal.amount * value / Decimal(100))
        else:
            discount = Money.rounded(value)
        return min(discount, subtotal)

    def check_eligibility(self, coupon: CouponDefinition, subtotal: Money, now: datetime) -> None:
        """Raise InvalidCoupon when the coupon cannot be used for this order."""
        if not coupon.is_active:
            raise InvalidCoupon(f"Coupon {coupon.code} is not active")
        if coupon.expires_at is not None and coupon.expires_at < now:
            raise InvalidCoupon(f"Coupon {coupon.code} has expired")
        if subtotal.amount < coupon.min_purchase:
            raise InvalidCoupon(
                f"Minimum purchase of {coupon.min_purchase} required to use coupon {coupon.code}"
            )

    def apply(self, subtotal: Money, coupon: CouponDefinition) -> CouponApplication:
        discount = self.resolve(subtotal, coupon)
        return CouponApplication(
            code=coupon.code,
            discount_type=DiscountType(coupon.discount_type),
            discount_value=self._value(coupon),
            discount_applied=discount,
        )

    @staticmethod
    def _value(coupon: CouponDefinition) -> Decimal:
        try:
            value = Decimal(str(coupon.discount_value))
        except InvalidOperation:
            raise InvalidCoupon(f"Coupon {coupon.code} has an invalid discount value") from None
        if not value.is_finite() or value < 0:
            raise InvalidCoupon(f"Coupon {coupon.code} has an invalid discount value")
        return value
