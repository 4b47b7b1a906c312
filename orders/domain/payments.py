"""
Reconciliation of payment gateway callbacks with the order aggregate.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Callable

from orders.domain.errors import (
    InvalidOrderOperation,
    InvariantViolation,
    PaymentCorrelationError,
)
from orders.domain.results import OperationResult, ReviewRequired
from orders.domain.state_machine import OrderStatusMachine
from orders.domain.statuses import (
    GatewayOutcome,
    NotificationPriority,
    NotificationType,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    RefundStatus,
)

if TYPE_CHECKING:
    from orders.domain.order import Order


logger = logging.getLogger(__name__)

SETTLED_PAYMENT_STATUSES = frozenset({
    PaymentStatus.PAID, PaymentStatus.REFUNDED, PaymentStatus.REFUND_FAILED,
})

# Order states from which a failed prepaid payment forces payment_failed.
PAYMENT_FAILURE_SOURCES = frozenset({
    OrderStatus.PROCESSING, OrderStatus.CONFIRMED, OrderStatus.READY_TO_SHIP,
})


class PaymentReconciler:
    """Applies gateway outcomes to payment and order status, idempotently.

    Callbacks may arrive duplicated or out of order. Re-applying an outcome
    that is already reflected is a no-op, and an outcome that an already
    recorded later outcome supersedes (``failed`` after ``paid``,
    ``refund_failed`` after ``refunded``) is dropped as stale. Either way the
    aggregate converges on the same final state whatever the arrival order.
    """

    def __init__(self, machine: OrderStatusMachine | None = None):
        self.machine = machine or OrderStatusMachine()

    def apply_gateway_result(
        self,
        order: Order,
        gateway_order_id: str,
        payment_id: str,
        signature: str,
        outcome: GatewayOutcome | str,
        now: datetime | None = None,
        code_factory: Callable[[], str] | None = None,
    ) -> OperationResult:
        if not order.gateway_order_id or gateway_order_id != order.gateway_order_id:
            raise PaymentCorrelationError(
                f"Gateway order {gateway_order_id!r} does not belong to order {order.id}"
            )
        try:
            outcome = GatewayOutcome(outcome)
        except ValueError:
            raise InvalidOrderOperation(f"Unknown payment outcome: {outcome!r}") from None

        if outcome == GatewayOutcome.PAID:
            return self._apply_paid(order, payment_id, signature, now, code_factory)
        if outcome == GatewayOutcome.FAILED:
            return self._apply_failed(order, payment_id, now)
        return self._apply_refund(order, payment_id, PaymentStatus(outcome.value), now)

    def _apply_paid(self, order, payment_id, signature, now, code_factory) -> OperationResult:
        if order.payment_status in SETTLED_PAYMENT_STATUSES:
            if order.payment_id == payment_id:
                return OperationResult.noop()
            raise PaymentCorrelationError(
                f"Order {order.id} is already settled by payment {order.payment_id}"
            )
        confirms = order.order_status in (OrderStatus.PROCESSING, OrderStatus.PAYMENT_FAILED) or (
            order.order_status == OrderStatus.SHIPMENT_FAILED and order.custom_order_id is None
        )
        if confirms and order.custom_order_id is None and code_factory is None:
            raise InvariantViolation("An order code generator is required to confirm an order")

        order._record_payment(PaymentStatus.PAID, payment_id, signature)
        result = OperationResult(applied=True)

        if confirms:
            self.machine.transition(
                order,
                OrderStatus.CONFIRMED,
                remarks="Payment confirmed",
                now=now,
                code_factory=code_factory,
            )
        elif order.order_status == OrderStatus.CANCELLED:
            order._open_refund_request("Payment captured after cancellation", now)
            result.warnings.append(ReviewRequired("payment captured for a cancelled order"))
        return result

    def _apply_failed(self, order, payment_id, now) -> OperationResult:
        if order.payment_status in SETTLED_PAYMENT_STATUSES:
            logger.info(
                "stale_payment_failure_ignored",
                extra={"order_id": str(order.id), "status": order.payment_status.value},
            )
            return OperationResult.noop(duplicate=False)
        if order.payment_status == PaymentStatus.FAILED and order.payment_id == payment_id:
            return OperationResult.noop()

        order._record_payment(PaymentStatus.FAILED, payment_id, "")
        if (
            order.payment_method == PaymentMethod.PREPAID
            and order.order_status in PAYMENT_FAILURE_SOURCES
        ):
            self.machine.transition(
                order, OrderStatus.PAYMENT_FAILED, remarks="Payment failed at gateway", now=now
            )
        return OperationResult(applied=True)

    def _apply_refund(self, order, payment_id, target: PaymentStatus, now) -> OperationResult:
        if order.payment_id != payment_id:
            raise PaymentCorrelationError(
                f"Refund for payment {payment_id!r} does not match order {order.id}"
            )
        if order.payment_status == target:
            return OperationResult.noop()
        if order.payment_status == PaymentStatus.REFUNDED:
            # refund_failed arriving after the refund went through
            return OperationResult.noop(duplicate=False)
        if order.payment_status not in (PaymentStatus.PAID, PaymentStatus.REFUND_FAILED):
            raise InvalidOrderOperation(
                f"Order {order.id} cannot be refunded with payment {order.payment_status.value}"
            )

        order._record_payment(target, payment_id, order.gateway_signature)
        if target == PaymentStatus.REFUNDED:
            if order.refund_request and order.refund_request.status == RefundStatus.PENDING:
                order._resolve_refund_request(RefundStatus.APPROVED)
            order._request_notification(NotificationType.REFUND_PROCESSED, NotificationPriority.HIGH)
        return OperationResult(applied=True)
