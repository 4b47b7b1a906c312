"""
Order status state machine.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable
from uuid import UUID

from orders.domain.errors import InvalidTransition, InvariantViolation
from orders.domain.ledger import StatusHistoryEntry
from orders.domain.statuses import (
    NotificationPriority,
    NotificationType,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
)

if TYPE_CHECKING:
    from orders.domain.order import Order


S = OrderStatus

TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    S.PROCESSING: frozenset({S.CONFIRMED, S.CANCELLED, S.SHIPMENT_FAILED, S.PAYMENT_FAILED}),
    S.CONFIRMED: frozenset({S.READY_TO_SHIP, S.CANCELLED, S.SHIPMENT_FAILED, S.PAYMENT_FAILED}),
    S.READY_TO_SHIP: frozenset({S.SHIPPED, S.CANCELLED, S.SHIPMENT_FAILED, S.PAYMENT_FAILED}),
    S.SHIPPED: frozenset({S.OUT_FOR_DELIVERY, S.DELIVERED, S.RTO}),
    S.OUT_FOR_DELIVERY: frozenset({S.DELIVERED, S.RTO}),
    S.DELIVERED: frozenset({S.RETURNED}),
    # Retry after a failed courier booking, or a late successful payment.
    S.SHIPMENT_FAILED: frozenset({S.CONFIRMED, S.READY_TO_SHIP, S.CANCELLED}),
    S.PAYMENT_FAILED: frozenset({S.CONFIRMED, S.CANCELLED}),
    S.RTO: frozenset({S.RETURNED}),
    S.CANCELLED: frozenset(),
    S.RETURNED: frozenset(),
}

TERMINAL_STATUSES = frozenset({S.DELIVERED, S.CANCELLED, S.RETURNED})

# Prepaid orders may only sit in these states once the gateway reported payment.
PAID_ONLY_STATUSES = frozenset({
    S.CONFIRMED, S.READY_TO_SHIP, S.SHIPPED, S.OUT_FOR_DELIVERY, S.DELIVERED,
})

CONFIRMED_THRESHOLD = S.CONFIRMED

# States only reachable through confirmed; the order code is set in all of them.
CODE_REQUIRED_STATUSES = frozenset({
    S.CONFIRMED, S.READY_TO_SHIP, S.SHIPPED, S.OUT_FOR_DELIVERY, S.DELIVERED, S.RTO, S.RETURNED,
})


def notification_for(
    target: OrderStatus,
    payment_method: PaymentMethod,
) -> tuple[NotificationType, NotificationPriority]:
    """Notification type and priority for a successful transition."""
    if target == S.CONFIRMED and payment_method == PaymentMethod.PREPAID:
        return NotificationType.PAYMENT_CONFIRMATION, NotificationPriority.HIGH
    if target == S.CANCELLED:
        return NotificationType.ORDER_CANCELLED, NotificationPriority.HIGH
    if target == S.DELIVERED:
        return NotificationType.ORDER_DELIVERED, NotificationPriority.MEDIUM
    if target in (S.PAYMENT_FAILED, S.SHIPMENT_FAILED, S.RTO):
        return NotificationType.ORDER_STATUS_UPDATE, NotificationPriority.HIGH
    return NotificationType.ORDER_STATUS_UPDATE, NotificationPriority.MEDIUM


class OrderStatusMachine:
    """Validates and applies order-status transitions."""

    transitions = TRANSITIONS

    def allowed_targets(self, order: Order) -> frozenset[OrderStatus]:
        return self.transitions[order.order_status]

    def can_transition(self, order: Order, target: OrderStatus) -> bool:
        try:
            self._validate(order, OrderStatus(target))
        except InvalidTransition:
            return False
        return True

    def transition(
        self,
        order: Order,
        target: OrderStatus,
        actor: UUID | None = None,
        remarks: str = "",
        now: datetime | None = None,
        code_factory: Callable[[], str] | None = None,
    ) -> StatusHistoryEntry:
        """Move ``order`` to ``target`` and record it in the status history.

        Raises InvalidTransition and leaves the order untouched when the move
        is not allowed. Reaching ``confirmed`` for the first time assigns the
        human-friendly order code from ``code_factory``.
        """
        try:
            target = OrderStatus(target)
        except ValueError:
            raise InvalidTransition(order.order_status, target, "unknown status") from None
        self._validate(order, target)

        custom_order_id = None
        if target == CONFIRMED_THRESHOLD and order.custom_order_id is None:
            if code_factory is None:
                raise InvariantViolation("An order code generator is required to confirm an order")
            custom_order_id = code_factory()

        entry = StatusHistoryEntry(
            status=target,
            changed_at=now or datetime.now(timezone.utc),
            remarks=remarks,
            actor_id=actor,
        )
        order._commit_status(entry, custom_order_id)

        notification_type, priority = notification_for(target, order.payment_method)
        order._request_notification(notification_type, priority)
        return entry

    def _validate(self, order: Order, target: OrderStatus) -> None:
        current = order.order_status
        if target not in self.transitions[current]:
            if current in TERMINAL_STATUSES and not self.transitions[current]:
                raise InvalidTransition(current, target, "order is in a terminal state")
            raise InvalidTransition(current, target)
        if (
            target in CODE_REQUIRED_STATUSES
            and target != CONFIRMED_THRESHOLD
            and order.custom_order_id is None
        ):
            raise InvalidTransition(current, target, "order was never confirmed")
        if (
            order.payment_method == PaymentMethod.PREPAID
            and target in PAID_ONLY_STATUSES
            and order.payment_status != PaymentStatus.PAID
        ):
            raise InvalidTransition(
                current, target, f"prepaid order payment is {order.payment_status.value}"
            )
