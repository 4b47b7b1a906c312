from __future__ import annotations

from uuid import uuid4

from django.db import models

from orders.domain.statuses import (
    DeliveryMode,
    DiscountType,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    RefundStatus,
)


def choices(enum_cls) -> list[tuple[str, str]]:
    return [(member.value, member.value.replace("_", " ").capitalize()) for member in enum_cls]


OPERATION_TYPE = (
    ("PLACE_ORDER", "Оформление заказа"),
    ("CANCEL_ORDER", "Отмена заказа"),
    ("REQUEST_REFUND", "Запрос возврата"),
    ("UNKNOWN", "Прочее"),
)


class TimeStampedModel(models.Model):
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class ProductRecord(TimeStampedModel):
    """Catalog entry consulted once, at checkout, to snapshot prices."""
    id = models.UUIDField(primary_key=True, default=uuid4, editable=False)
    name = models.CharField(max_length=255)
    price = models.DecimalField(max_digits=12, decimal_places=2)
    is_active = models.BooleanField(default=True)


class CouponRecord(TimeStampedModel):
    code = models.CharField(max_length=50, unique=True)
    discount_type = models.CharField(max_length=20, choices=choices(DiscountType))
    discount_value = models.DecimalField(max_digits=12, decimal_places=2)
    min_purchase = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    expires_at = models.DateTimeField(null=True, blank=True)
    is_active = models.BooleanField(default=True)


class OrderRecord(TimeStampedModel):
    id = models.UUIDField(primary_key=True, default=uuid4, editable=False)
    user_id = models.UUIDField()
    version = models.PositiveIntegerField(default=1)

    order_status = models.CharField(max_length=32, choices=choices(OrderStatus))
    payment_status = models.CharField(max_length=32, choices=choices(PaymentStatus))
    payment_method = models.CharField(max_length=16, choices=[(m.value, m.value) for m in PaymentMethod])
    custom_order_id = models.CharField(max_length=32, unique=True, null=True, blank=True)

    subtotal = models.DecimalField(max_digits=12, decimal_places=2)
    discount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    total_amount = models.DecimalField(max_digits=12, decimal_places=2)

    shipping_address = models.JSONField()

    delivery_mode = models.CharField(max_length=32, choices=choices(DeliveryMode))
    delivery_cost = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    estimated_delivery_days = models.PositiveIntegerField(default=0)
    shipment_id = models.CharField(max_length=64, unique=True, null=True, blank=True)
    label_url = models.CharField(max_length=512, blank=True, default="")
    courier_provider = models.CharField(max_length=64, blank=True, default="")
    customer_instructions = models.TextField(blank=True, default="")

    gateway_order_id = models.CharField(max_length=64, null=True, blank=True, db_index=True)
    payment_id = models.CharField(max_length=64, null=True, blank=True)
    gateway_signature = models.CharField(max_length=256, blank=True, default="")

    coupon = models.JSONField(null=True, blank=True)

    refund_reason = models.TextField(blank=True, default="")
    refund_status = models.CharField(max_length=16, choices=choices(RefundStatus), blank=True, default="")
    refund_requested_at = models.DateTimeField(null=True, blank=True)

    review_reason = models.CharField(max_length=255, blank=True, default="")

    placed_at = models.DateTimeField()

    class Meta:
        indexes = [
            models.Index(fields=("user_id", "-placed_at")),
            models.Index(fields=("order_status",)),
        ]


class LineItemRecord(TimeStampedModel):
    order = models.ForeignKey(
        OrderRecord,
        on_delete=models.CASCADE,
        related_name="line_items",
    )
    position = models.PositiveIntegerField()
    product_id = models.UUIDField()
    sku = models.CharField(max_length=64)
    quantity = models.PositiveIntegerField()
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)
    customization = models.JSONField(null=True, blank=True)

    class Meta:
        ordering = ["position"]
        unique_together = [("order", "position")]


class StatusHistoryRecord(TimeStampedModel):
    """Insert-only; one row per order-status change."""
    order = models.ForeignKey(
        OrderRecord,
        on_delete=models.PROTECT,
        related_name="status_history",
    )
    sequence = models.PositiveIntegerField()
    status = models.CharField(max_length=32, choices=choices(OrderStatus))
    changed_at = models.DateTimeField()
    remarks = models.TextField(blank=True, default="")
    actor_id = models.UUIDField(null=True, blank=True)

    class Meta:
        ordering = ["sequence"]
        unique_together = [("order", "sequence")]


class DeliveryEventRecord(TimeStampedModel):
    """Insert-only courier event; ``sequence`` is the arrival order."""
    order = models.ForeignKey(
        OrderRecord,
        on_delete=models.PROTECT,
        related_name="delivery_events",
    )
    sequence = models.PositiveIntegerField()
    code = models.CharField(max_length=64)
    status = models.CharField(max_length=255)
    occurred_at = models.DateTimeField()
    location = models.CharField(max_length=255, blank=True, default="")
    description = models.TextField(blank=True, default="")
    expected_delivery = models.DateTimeField(null=True, blank=True)
    updated_by = models.CharField(max_length=64, blank=True, default="")
    meta = models.JSONField(default=dict, blank=True)

    class Meta:
        ordering = ["occurred_at", "sequence"]
        unique_together = [("order", "sequence")]
        indexes = [
            models.Index(fields=("order", "code", "occurred_at")),
        ]


class OrderCodeCounter(models.Model):
    """Per-day serial used for human-friendly order codes."""
    date_key = models.CharField(max_length=8, unique=True)
    seq = models.PositiveIntegerField(default=0)


class IdempotencyKey(TimeStampedModel):
    key = models.CharField(max_length=255)
    user_id = models.UUIDField(null=True, blank=True)
    operation = models.CharField(max_length=32, choices=OPERATION_TYPE)
    request_hash = models.CharField(max_length=255)
    response_payload = models.JSONField()

    class Meta:
        unique_together = [("key", "user_id", "operation")]
        indexes = [
            models.Index(fields=("request_hash",)),
        ]
