"""
Domain model for Order aggregate.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Callable
from uuid import UUID, uuid4

from orders.domain.delivery import DeliveryEvent, DeliveryInfoView, DeliveryLog, DeliveryTracker
from orders.domain.discounts import CouponApplication, CouponDefinition, DiscountEngine
from orders.domain.errors import InvalidOrderOperation, InvariantViolation
from orders.domain.events import DomainEvent, NotificationRequested
from orders.domain.ledger import StatusHistoryEntry, StatusHistoryLedger
from orders.domain.money import Money, total_of
from orders.domain.payments import PaymentReconciler
from orders.domain.results import OperationResult
from orders.domain.state_machine import CODE_REQUIRED_STATUSES, PAID_ONLY_STATUSES, OrderStatusMachine
from orders.domain.statuses import (
    DeliveryMode,
    GatewayOutcome,
    NotificationPriority,
    NotificationType,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    RefundStatus,
)


@dataclass(frozen=True)
class Customization:
    """Buyer-supplied personalisation for a line item."""
    caption: str = ""
    description: str = ""
    files: tuple[str, ...] = ()


@dataclass(frozen=True)
class LineItem:
    """Order line with the unit price captured at order time."""
    product_id: UUID
    sku: str
    quantity: int
    unit_price: Money
    customization: Customization | None = None

    def __post_init__(self):
        if not self.sku:
            raise InvalidOrderOperation("SKU is required")
        if not isinstance(self.quantity, int) or self.quantity < 1:
            raise InvalidOrderOperation("Quantity must be at least 1")

    @property
    def subtotal(self) -> Money:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class ShippingAddress:
    name: str
    street: str
    city: str
    state: str
    zip_code: str
    phone: str
    country: str = "India"
    email: str | None = None
    relationship: str | None = None

    REQUIRED = ("name", "street", "city", "state", "zip_code", "phone", "country")

    def __post_init__(self):
        missing = [name for name in self.REQUIRED if not getattr(self, name)]
        if missing:
            raise InvalidOrderOperation(f"Shipping address is missing: {', '.join(missing)}")


@dataclass(frozen=True)
class DeliveryInfo:
    mode: DeliveryMode = DeliveryMode.MANUAL
    cost: Money = field(default_factory=Money.zero)
    estimated_delivery_days: int = 0
    shipment_id: str | None = None
    label_url: str = ""
    provider: str = ""
    customer_instructions: str = ""

    def __post_init__(self):
        try:
            object.__setattr__(self, "mode", DeliveryMode(self.mode))
        except ValueError:
            raise InvalidOrderOperation(f"Unknown delivery mode: {self.mode!r}") from None
        if self.estimated_delivery_days < 0:
            raise InvalidOrderOperation("Estimated delivery days cannot be negative")


@dataclass(frozen=True)
class RefundRequest:
    reason: str
    status: RefundStatus
    requested_at: datetime


# Statuses from which the shipping address may still be edited.
ADDRESS_EDITABLE_STATUSES = frozenset({OrderStatus.PROCESSING, OrderStatus.PAYMENT_FAILED})

SHIPMENT_ASSIGNABLE_STATUSES = frozenset({
    OrderStatus.CONFIRMED, OrderStatus.READY_TO_SHIP, OrderStatus.SHIPMENT_FAILED,
})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Order:
    """Order aggregate root.

    Owns the line items, the status history, the delivery event log and the
    payment fields. Every mutation goes through the state machine, the payment
    reconciler or the delivery tracker held by the aggregate. Monetary totals
    are always recomputed from line items, delivery cost and the resolved
    discount.
    """

    def __init__(
        self,
        user_id: UUID,
        line_items: list[LineItem],
        shipping_address: ShippingAddress,
        payment_method: PaymentMethod,
        delivery: DeliveryInfo | None = None,
        id: UUID | None = None,
        payment_status: PaymentStatus = PaymentStatus.PENDING,
        order_status: OrderStatus = OrderStatus.PROCESSING,
        custom_order_id: str | None = None,
        gateway_order_id: str | None = None,
        payment_id: str | None = None,
        gateway_signature: str = "",
        coupon: CouponApplication | None = None,
        refund_request: RefundRequest | None = None,
        review_reason: str = "",
        status_history: StatusHistoryLedger | None = None,
        delivery_log: DeliveryLog | None = None,
        created_at: datetime | None = None,
        version: int = 0,
    ):
        if not line_items:
            raise InvalidOrderOperation("Order must contain at least one line item")

        self.id = id or uuid4()
        self.user_id = user_id
        self._line_items = tuple(line_items)
        self._shipping_address = shipping_address
        self._delivery = delivery or DeliveryInfo()
        try:
            self.payment_method = PaymentMethod(payment_method)
        except ValueError:
            raise InvalidOrderOperation(f"Unknown payment method: {payment_method!r}") from None
        self._payment_status = PaymentStatus(payment_status)
        self._order_status = OrderStatus(order_status)
        self._custom_order_id = custom_order_id
        self._gateway_order_id = gateway_order_id
        self._payment_id = payment_id
        self._gateway_signature = gateway_signature
        self._coupon = coupon
        self._refund_request = refund_request
        self._review_reason = review_reason
        self._history = status_history or StatusHistoryLedger()
        self.delivery_log = delivery_log or DeliveryLog()
        self.created_at = created_at or _utcnow()
        self.version = version
        self._pending_events: list[DomainEvent] = []

        self._machine = OrderStatusMachine()
        self._reconciler = PaymentReconciler(self._machine)
        self._tracker = DeliveryTracker(self._machine)
        self._discounts = DiscountEngine()

    @classmethod
    def place(
        cls,
        user_id: UUID,
        line_items: list[LineItem],
        shipping_address: ShippingAddress,
        payment_method: PaymentMethod,
        delivery: DeliveryInfo | None = None,
        coupon: CouponDefinition | None = None,
        now: datetime | None = None,
    ) -> Order:
        """Create a new order at checkout (processing / payment pending)."""
        now = now or _utcnow()
        order = cls(
            user_id=user_id,
            line_items=line_items,
            shipping_address=shipping_address,
            payment_method=payment_method,
            delivery=delivery,
            created_at=now,
        )
        if coupon is not None:
            order.apply_coupon(coupon, now=now)
        order._request_notification(NotificationType.ORDER_CREATED, NotificationPriority.MEDIUM)
        return order

    # Read side

    @property
    def line_items(self) -> tuple[LineItem, ...]:
        return self._line_items

    @property
    def shipping_address(self) -> ShippingAddress:
        return self._shipping_address

    @property
    def delivery(self) -> DeliveryInfo:
        return self._delivery

    @property
    def order_status(self) -> OrderStatus:
        return self._order_status

    @property
    def payment_status(self) -> PaymentStatus:
        return self._payment_status

    @property
    def custom_order_id(self) -> str | None:
        return self._custom_order_id

    @property
    def gateway_order_id(self) -> str | None:
        return self._gateway_order_id

    @property
    def payment_id(self) -> str | None:
        return self._payment_id

    @property
    def gateway_signature(self) -> str:
        return self._gateway_signature

    @property
    def coupon(self) -> CouponApplication | None:
        return self._coupon

    @property
    def refund_request(self) -> RefundRequest | None:
        return self._refund_request

    @property
    def review_reason(self) -> str:
        return self._review_reason

    @property
    def needs_review(self) -> bool:
        return bool(self._review_reason)

    @property
    def status_history(self) -> StatusHistoryLedger:
        return self._history

    @property
    def subtotal(self) -> Money:
        return total_of(item.subtotal for item in self._line_items)

    @property
    def discount(self) -> Money:
        return self._coupon.discount_applied if self._coupon else Money.zero()

    @property
    def total_amount(self) -> Money:
        """Subtotal plus delivery cost minus discount."""
        return self.subtotal + self._delivery.cost - self.discount

    @property
    def pending_events(self) -> tuple[DomainEvent, ...]:
        return tuple(self._pending_events)

    def collect_events(self) -> list[DomainEvent]:
        """Return and clear events raised since the last collection."""
        events, self._pending_events = self._pending_events, []
        return events

    def delivery_summary(self) -> DeliveryInfoView:
        return self._tracker.summarize(self)

    # Commands

    def change_status(
        self,
        target: OrderStatus,
        actor: UUID | None = None,
        remarks: str = "",
        now: datetime | None = None,
        code_factory: Callable[[], str] | None = None,
    ) -> StatusHistoryEntry:
        return self._machine.transition(
            self, target, actor=actor, remarks=remarks, now=now, code_factory=code_factory
        )

    def apply_coupon(self, coupon: CouponDefinition, now: datetime | None = None) -> CouponApplication:
        """Resolve ``coupon`` against the current subtotal and attach it."""
        if self._order_status != OrderStatus.PROCESSING or self._payment_status != PaymentStatus.PENDING:
            raise InvalidOrderOperation("Coupons can only be applied before payment")
        subtotal = self.subtotal
        self._discounts.check_eligibility(coupon, subtotal, now or _utcnow())
        self._coupon = self._discounts.apply(subtotal, coupon)
        return self._coupon

    def attach_gateway_order(self, gateway_order_id: str) -> bool:
        """Record the gateway order id used to correlate payment callbacks.

        Returns False when the same id was already attached.
        """
        if not gateway_order_id:
            raise InvalidOrderOperation("Gateway order id is required")
        if self._gateway_order_id == gateway_order_id:
            return False
        if self._payment_status not in (PaymentStatus.PENDING, PaymentStatus.FAILED):
            raise InvalidOrderOperation(
                f"Cannot start a payment for an order with payment {self._payment_status.value}"
            )
        if self._order_status not in (OrderStatus.PROCESSING, OrderStatus.PAYMENT_FAILED):
            raise InvalidOrderOperation(
                f"Cannot start a payment for an order in {self._order_status.value}"
            )
        self._gateway_order_id = gateway_order_id
        return True

    def apply_gateway_result(
        self,
        gateway_order_id: str,
        payment_id: str,
        signature: str,
        outcome: GatewayOutcome,
        now: datetime | None = None,
        code_factory: Callable[[], str] | None = None,
    ) -> OperationResult:
        result = self._reconciler.apply_gateway_result(
            self, gateway_order_id, payment_id, signature, outcome,
            now=now, code_factory=code_factory,
        )
        self._flag_for_review(result)
        return result

    def record_delivery_event(self, event: DeliveryEvent, now: datetime | None = None) -> OperationResult:
        result = self._tracker.record_event(self, event, now=now)
        self._flag_for_review(result)
        return result

    def assign_shipment(self, shipment_id: str, label_url: str = "", provider: str = "") -> bool:
        """Attach the courier waybill. Returns False if the same waybill is already set."""
        if not shipment_id:
            raise InvalidOrderOperation("Shipment id is required")
        if self._delivery.shipment_id == shipment_id:
            return False
        if self._delivery.shipment_id is not None:
            raise InvalidOrderOperation(
                f"Order {self.id} already has shipment {self._delivery.shipment_id}"
            )
        if self._order_status not in SHIPMENT_ASSIGNABLE_STATUSES:
            raise InvalidOrderOperation(
                f"Cannot assign a shipment to an order in {self._order_status.value}"
            )
        self._delivery = replace(
            self._delivery,
            shipment_id=shipment_id,
            label_url=label_url or self._delivery.label_url,
            provider=provider or self._delivery.provider,
        )
        return True

    def update_shipping_address(self, address: ShippingAddress) -> None:
        if self._order_status not in ADDRESS_EDITABLE_STATUSES:
            raise InvalidOrderOperation("Shipping address cannot change once the order is confirmed")
        self._shipping_address = address

    def cancel(self, actor: UUID | None = None, reason: str = "", now: datetime | None = None) -> StatusHistoryEntry:
        """Cancel the order; a paid order gets a pending refund request."""
        entry = self._machine.transition(
            self, OrderStatus.CANCELLED, actor=actor, remarks=reason or "Order cancelled", now=now
        )
        if self._payment_status == PaymentStatus.PAID:
            self._open_refund_request(reason or "Order cancelled", now)
        return entry

    def request_refund(self, reason: str, now: datetime | None = None) -> RefundRequest:
        if self._payment_status != PaymentStatus.PAID:
            raise InvalidOrderOperation("Refund can only be requested for paid orders")
        if self._refund_request and self._refund_request.status != RefundStatus.REJECTED:
            raise InvalidOrderOperation("Refund already requested for this order")
        if not reason:
            raise InvalidOrderOperation("Refund reason is required")
        return self._open_refund_request(reason, now)

    def resolve_refund(self, approve: bool) -> RefundRequest:
        if not self._refund_request or self._refund_request.status != RefundStatus.PENDING:
            raise InvalidOrderOperation("No pending refund request for this order")
        status = RefundStatus.APPROVED if approve else RefundStatus.REJECTED
        return self._resolve_refund_request(status)

    def clear_review(self) -> str:
        """Acknowledge the manual-review flag; returns the reason that was cleared."""
        if not self._review_reason:
            raise InvalidOrderOperation(f"Order {self.id} is not flagged for review")
        reason, self._review_reason = self._review_reason, ""
        return reason

    def check_invariants(self) -> None:
        """Raise InvariantViolation if the aggregate is inconsistent."""
        self.total_amount  # raises on negative total
        reached_confirmed = any(e.status == OrderStatus.CONFIRMED for e in self._history)
        if reached_confirmed != (self._custom_order_id is not None):
            raise InvariantViolation(
                f"Order {self.id}: order code must be set exactly when the order was confirmed"
            )
        if self._order_status in CODE_REQUIRED_STATUSES and self._custom_order_id is None:
            raise InvariantViolation(
                f"Order {self.id}: {self._order_status.value} order has no order code"
            )
        if (
            self.payment_method == PaymentMethod.PREPAID
            and self._order_status in PAID_ONLY_STATUSES
            and self._payment_status in (PaymentStatus.PENDING, PaymentStatus.FAILED)
        ):
            raise InvariantViolation(
                f"Order {self.id}: prepaid order in {self._order_status.value} "
                f"with payment {self._payment_status.value}"
            )

    # Mutators used by the state machine, reconciler and tracker

    def _commit_status(self, entry: StatusHistoryEntry, custom_order_id: str | None) -> None:
        if custom_order_id is not None:
            if self._custom_order_id is not None:
                raise InvariantViolation(f"Order {self.id} already has code {self._custom_order_id}")
            self._custom_order_id = custom_order_id
        self._order_status = entry.status
        self._history.append(entry)

    def _record_payment(self, status: PaymentStatus, payment_id: str, signature: str) -> None:
        self._payment_status = status
        self._payment_id = payment_id
        self._gateway_signature = signature

    def _flag_for_review(self, result: OperationResult) -> None:
        if result.warnings:
            self._review_reason = "; ".join(w.reason for w in result.warnings)[:255]

    def _open_refund_request(self, reason: str, now: datetime | None) -> RefundRequest:
        self._refund_request = RefundRequest(
            reason=reason,
            status=RefundStatus.PENDING,
            requested_at=now or _utcnow(),
        )
        return self._refund_request

    def _resolve_refund_request(self, status: RefundStatus) -> RefundRequest:
        self._refund_request = replace(self._refund_request, status=status)
        return self._refund_request

    def _request_notification(self, notification_type: NotificationType, priority: NotificationPriority) -> None:
        self._pending_events.append(NotificationRequested(
            event_id=uuid4(),
            aggregate_id=self.id,
            event_type="NotificationRequested",
            user_id=self.user_id,
            notification_type=notification_type,
            priority=priority,
            order_status=self._order_status,
            custom_order_id=self._custom_order_id,
            occurred_at=_utcnow().isoformat(),
        ))
