"""
Infrastructure repositories for the order aggregate and its collaborators.
"""
from __future__ import annotations

import logging
from dataclasses import asdict
from decimal import Decimal
from uuid import UUID

from django.db import IntegrityError, transaction
from django.db.models import Max, Prefetch
from django.utils import timezone

from orders.domain.delivery import DeliveryEvent, DeliveryLog, TrackedEvent
from orders.domain.discounts import CouponApplication, CouponDefinition
from orders.domain.errors import (
    DuplicateIdentifier,
    InvariantViolation,
    OrderNotFound,
    VersionConflict,
)
from orders.domain.ledger import StatusHistoryEntry, StatusHistoryLedger
from orders.domain.money import Money
from orders.domain.order import (
    Customization,
    DeliveryInfo,
    LineItem,
    Order,
    RefundRequest,
    ShippingAddress,
)
from orders.domain.statuses import DiscountType, OrderStatus, RefundStatus
from orders.infra.models import (
    CouponRecord,
    DeliveryEventRecord,
    LineItemRecord,
    OrderRecord,
    ProductRecord,
    StatusHistoryRecord,
)

logger = logging.getLogger(__name__)


class CatalogRepository:
    """Read-only catalog lookup used at checkout."""

    def get_unit_prices(self, product_ids: list[UUID]) -> dict[UUID, Decimal]:
        """Current prices of active products, keyed by product id."""
        return dict(
            ProductRecord.objects
            .filter(id__in=product_ids, is_active=True)
            .values_list("id", "price")
        )


class CouponRepository:
    """Repository for coupon definitions."""

    def get_by_code(self, code: str) -> CouponDefinition | None:
        record = CouponRecord.objects.filter(code=code.strip().upper()).first()
        if record is None:
            return None
        return CouponDefinition(
            code=record.code,
            discount_type=record.discount_type,
            discount_value=record.discount_value,
            min_purchase=record.min_purchase,
            expires_at=record.expires_at,
            is_active=record.is_active,
        )


class OrderRepository:
    """Repository for Order aggregate with optimistic concurrency."""

    def _queryset(self):
        return OrderRecord.objects.prefetch_related(
            "line_items",
            Prefetch("status_history", queryset=StatusHistoryRecord.objects.order_by("sequence")),
            "delivery_events",
        )

    def get_by_id(self, order_id: UUID) -> Order | None:
        """Get order by ID with items, history and delivery events."""
        try:
            return self._to_domain(self._queryset().get(id=order_id))
        except OrderRecord.DoesNotExist:
            return None

    def load(self, order_id: UUID) -> Order:
        order = self.get_by_id(order_id)
        if order is None:
            raise OrderNotFound(f"Order {order_id} not found")
        return order

    def get_by_gateway_order_id(self, gateway_order_id: str) -> Order | None:
        record = self._queryset().filter(gateway_order_id=gateway_order_id).first()
        return self._to_domain(record) if record else None

    def get_by_shipment_id(self, shipment_id: str) -> Order | None:
        record = self._queryset().filter(shipment_id=shipment_id).first()
        return self._to_domain(record) if record else None

    def get_by_user(self, user_id: UUID, limit: int = 50, offset: int = 0) -> list[Order]:
        """Get orders by user, newest first, with pagination."""
        records = self._queryset().filter(user_id=user_id).order_by("-placed_at")[offset:offset + limit]
        return [self._to_domain(record) for record in records]

    def search(
        self,
        status: str | None = None,
        payment_status: str | None = None,
        payment_method: str | None = None,
        user_id: UUID | None = None,
        needs_review: bool | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Order], int]:
        """Filtered orders, newest first, plus the total count before pagination."""
        filters = {}
        if status:
            filters["order_status"] = status
        if payment_status:
            filters["payment_status"] = payment_status
        if payment_method:
            filters["payment_method"] = payment_method
        if user_id:
            filters["user_id"] = user_id
        queryset = self._queryset().filter(**filters)
        if needs_review is True:
            queryset = queryset.exclude(review_reason="")
        elif needs_review is False:
            queryset = queryset.filter(review_reason="")

        total = queryset.count()
        records = queryset.order_by("-placed_at", "-id")[offset:offset + limit]
        return [self._to_domain(record) for record in records], total

    @transaction.atomic
    def save(self, order: Order, expected_version: int | None = None) -> int:
        """Persist ``order`` if the stored version still equals ``expected_version``.

        Returns the new version. Line items are written once; history and
        delivery events are only ever inserted.
        """
        expected = order.version if expected_version is None else expected_version
        order.check_invariants()
        self._check_unique(order)
        fields = self._to_fields(order)

        try:
            if expected == 0:
                record = OrderRecord.objects.create(id=order.id, version=1, **fields)
                LineItemRecord.objects.bulk_create([
                    self._line_item_record(record, position, item)
                    for position, item in enumerate(order.line_items, start=1)
                ])
                stored_history = 0
                stored_events = 0
            else:
                updated = (
                    OrderRecord.objects
                    .filter(id=order.id, version=expected)
                    .update(version=expected + 1, updated_at=timezone.now(), **fields)
                )
                if not updated:
                    if OrderRecord.objects.filter(id=order.id).exists():
                        raise VersionConflict(
                            f"Order {order.id} changed since version {expected} was read"
                        )
                    raise OrderNotFound(f"Order {order.id} not found")
                stored_history = StatusHistoryRecord.objects.filter(order_id=order.id).count()
                stored_events = (
                    DeliveryEventRecord.objects
                    .filter(order_id=order.id)
                    .aggregate(last=Max("sequence"))["last"] or 0
                )

            if stored_history > len(order.status_history):
                raise InvariantViolation(f"Order {order.id} status history lost entries")

            StatusHistoryRecord.objects.bulk_create([
                StatusHistoryRecord(
                    order_id=order.id,
                    sequence=stored_history + offset,
                    status=entry.status.value,
                    changed_at=entry.changed_at,
                    remarks=entry.remarks,
                    actor_id=entry.actor_id,
                )
                for offset, entry in enumerate(order.status_history.since(stored_history), start=1)
            ])
            DeliveryEventRecord.objects.bulk_create([
                self._delivery_event_record(order.id, tracked)
                for tracked in order.delivery_log.arrived_after(stored_events)
            ])
        except IntegrityError as e:
            raise DuplicateIdentifier(f"Order {order.id} conflicts with a stored order: {e}") from e

        order.version = expected + 1
        return order.version

    def _check_unique(self, order: Order) -> None:
        others = OrderRecord.objects.exclude(id=order.id)
        if order.custom_order_id and others.filter(custom_order_id=order.custom_order_id).exists():
            raise DuplicateIdentifier(f"Order code {order.custom_order_id} is already in use")
        shipment_id = order.delivery.shipment_id
        if shipment_id and others.filter(shipment_id=shipment_id).exists():
            raise DuplicateIdentifier(f"Shipment {shipment_id} is already assigned to another order")

    def _to_fields(self, order: Order) -> dict:
        delivery = order.delivery
        coupon = order.coupon
        refund = order.refund_request
        return {
            "user_id": order.user_id,
            "order_status": order.order_status.value,
            "payment_status": order.payment_status.value,
            "payment_method": order.payment_method.value,
            "custom_order_id": order.custom_order_id,
            "subtotal": order.subtotal.amount,
            "discount": order.discount.amount,
            "total_amount": order.total_amount.amount,
            "shipping_address": asdict(order.shipping_address),
            "delivery_mode": delivery.mode.value,
            "delivery_cost": delivery.cost.amount,
            "estimated_delivery_days": delivery.estimated_delivery_days,
            "shipment_id": delivery.shipment_id,
            "label_url": delivery.label_url,
            "courier_provider": delivery.provider,
            "customer_instructions": delivery.customer_instructions,
            "gateway_order_id": order.gateway_order_id,
            "payment_id": order.payment_id,
            "gateway_signature": order.gateway_signature,
            "coupon": {
                "code": coupon.code,
                "discount_type": coupon.discount_type.value,
                "discount_value": str(coupon.discount_value),
                "discount_applied": str(coupon.discount_applied.amount),
            } if coupon else None,
            "refund_reason": refund.reason if refund else "",
            "refund_status": refund.status.value if refund else "",
            "refund_requested_at": refund.requested_at if refund else None,
            "review_reason": order.review_reason,
            "placed_at": order.created_at,
        }

    def _line_item_record(self, record: OrderRecord, position: int, item: LineItem) -> LineItemRecord:
        customization = None
        if item.customization is not None:
            customization = {
                "caption": item.customization.caption,
                "description": item.customization.description,
                "files": list(item.customization.files),
            }
        return LineItemRecord(
            order=record,
            position=position,
            product_id=item.product_id,
            sku=item.sku,
            quantity=item.quantity,
            unit_price=item.unit_price.amount,
            customization=customization,
        )

    def _delivery_event_record(self, order_id: UUID, tracked: TrackedEvent) -> DeliveryEventRecord:
        event = tracked.event
        return DeliveryEventRecord(
            order_id=order_id,
            sequence=tracked.sequence,
            code=event.code,
            status=event.status,
            occurred_at=event.timestamp,
            location=event.location,
            description=event.description,
            expected_delivery=event.expected_delivery,
            updated_by=event.updated_by,
            meta=dict(event.meta),
        )

    def _to_domain(self, record: OrderRecord) -> Order:
        """Convert ORM record to domain aggregate."""
        items = []
        for item_record in record.line_items.all():
            customization = None
            if item_record.customization:
                customization = Customization(
                    caption=item_record.customization.get("caption", ""),
                    description=item_record.customization.get("description", ""),
                    files=tuple(item_record.customization.get("files", [])),
                )
            items.append(LineItem(
                product_id=item_record.product_id,
                sku=item_record.sku,
                quantity=item_record.quantity,
                unit_price=Money.of(item_record.unit_price),
                customization=customization,
            ))

        history = StatusHistoryLedger([
            StatusHistoryEntry(
                status=OrderStatus(entry.status),
                changed_at=entry.changed_at,
                remarks=entry.remarks,
                actor_id=entry.actor_id,
            )
            for entry in record.status_history.all()
        ])

        delivery_log = DeliveryLog([
            TrackedEvent(
                sequence=event.sequence,
                event=DeliveryEvent(
                    code=event.code,
                    status=event.status,
                    timestamp=event.occurred_at,
                    location=event.location,
                    description=event.description,
                    expected_delivery=event.expected_delivery,
                    updated_by=event.updated_by,
                    meta=event.meta,
                ),
            )
            for event in record.delivery_events.all()
        ])

        coupon = None
        if record.coupon:
            coupon = CouponApplication(
                code=record.coupon["code"],
                discount_type=DiscountType(record.coupon["discount_type"]),
                discount_value=Decimal(record.coupon["discount_value"]),
                discount_applied=Money.of(record.coupon["discount_applied"]),
            )

        refund_request = None
        if record.refund_status:
            refund_request = RefundRequest(
                reason=record.refund_reason,
                status=RefundStatus(record.refund_status),
                requested_at=record.refund_requested_at,
            )

        return Order(
            id=record.id,
            user_id=record.user_id,
            line_items=items,
            shipping_address=ShippingAddress(**record.shipping_address),
            payment_method=record.payment_method,
            delivery=DeliveryInfo(
                mode=record.delivery_mode,
                cost=Money.of(record.delivery_cost),
                estimated_delivery_days=record.estimated_delivery_days,
                shipment_id=record.shipment_id,
                label_url=record.label_url,
                provider=record.courier_provider,
                customer_instructions=record.customer_instructions,
            ),
            payment_status=record.payment_status,
            order_status=record.order_status,
            custom_order_id=record.custom_order_id,
            gateway_order_id=record.gateway_order_id,
            payment_id=record.payment_id,
            gateway_signature=record.gateway_signature,
            coupon=coupon,
            refund_request=refund_request,
            review_reason=record.review_reason,
            status_history=history,
            delivery_log=delivery_log,
            created_at=record.placed_at,
            version=record.version,
        )
