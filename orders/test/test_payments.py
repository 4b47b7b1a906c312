"""
Unit tests for payment gateway reconciliation.
"""
from django.test import SimpleTestCase

from orders.domain.errors import InvalidOrderOperation, PaymentCorrelationError
from orders.domain.statuses import (
    NotificationType,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    RefundStatus,
)
from orders.test.factories import CodeSequence, make_order, pay


def callback(order, outcome, payment_id="pay_1", codes=None, gateway_order_id=None):
    return order.apply_gateway_result(
        gateway_order_id or order.gateway_order_id,
        payment_id,
        "sig_1",
        outcome,
        code_factory=codes or CodeSequence(),
    )


class PaymentReconcilerTest(SimpleTestCase):
    """Tests for PaymentReconciler."""

    def test_paid_confirms_order_and_assigns_code(self):
        order = make_order()
        result = pay(order)
        self.assertTrue(result.applied)
        self.assertEqual(order.payment_status, PaymentStatus.PAID)
        self.assertEqual(order.order_status, OrderStatus.CONFIRMED)
        self.assertEqual(order.payment_id, "pay_1")
        self.assertIsNotNone(order.custom_order_id)

    def test_duplicate_paid_callback_is_noop(self):
        """Test that the same paid outcome twice yields one code and identical state."""
        codes = CodeSequence()
        order = make_order()
        callback(order, "paid", codes=codes)
        state = (order.order_status, order.payment_status, order.custom_order_id, len(order.status_history))
        events = len(order.pending_events)

        result = callback(order, "paid", codes=codes)

        self.assertFalse(result.applied)
        self.assertTrue(result.duplicate)
        self.assertEqual(
            (order.order_status, order.payment_status, order.custom_order_id, len(order.status_history)),
            state,
        )
        self.assertEqual(len(order.pending_events), events)
        self.assertEqual(codes.calls, 1)

    def test_correlation_mismatch_rejected(self):
        """Test that a callback for another gateway order changes nothing."""
        order = make_order()
        with self.assertRaises(PaymentCorrelationError):
            callback(order, "paid", gateway_order_id="gw_forged")
        self.assertEqual(order.payment_status, PaymentStatus.PENDING)
        self.assertEqual(order.order_status, OrderStatus.PROCESSING)

    def test_order_without_gateway_order_rejects_callbacks(self):
        order = make_order(gateway_order_id=None)
        with self.assertRaises(PaymentCorrelationError):
            order.apply_gateway_result("gw_order_1", "pay_1", "sig", "paid", code_factory=CodeSequence())

    def test_second_payment_for_settled_order_rejected(self):
        order = make_order()
        pay(order)
        with self.assertRaises(PaymentCorrelationError):
            callback(order, "paid", payment_id="pay_other")
        self.assertEqual(order.payment_id, "pay_1")

    def test_prepaid_failure_moves_to_payment_failed(self):
        order = make_order(PaymentMethod.PREPAID)
        result = callback(order, "failed")
        self.assertTrue(result.applied)
        self.assertEqual(order.payment_status, PaymentStatus.FAILED)
        self.assertEqual(order.order_status, OrderStatus.PAYMENT_FAILED)

    def test_cod_failure_keeps_order_status(self):
        """Test that payment status is informational only for COD orders."""
        order = make_order(PaymentMethod.COD)
        callback(order, "failed")
        self.assertEqual(order.payment_status, PaymentStatus.FAILED)
        self.assertEqual(order.order_status, OrderStatus.PROCESSING)
        self.assertEqual(len(order.status_history), 0)

    def test_retry_after_failure_confirms(self):
        order = make_order()
        callback(order, "failed", payment_id="pay_1")
        callback(order, "paid", payment_id="pay_2")
        self.assertEqual(order.order_status, OrderStatus.CONFIRMED)
        self.assertEqual(order.payment_status, PaymentStatus.PAID)
        self.assertEqual(
            [entry.status for entry in order.status_history],
            [OrderStatus.PAYMENT_FAILED, OrderStatus.CONFIRMED],
        )

    def test_late_failure_after_paid_is_ignored(self):
        """Test that arrival order does not matter: paid then failed ends paid."""
        order = make_order()
        pay(order, payment_id="pay_1")
        result = callback(order, "failed", payment_id="pay_0")
        self.assertFalse(result.applied)
        self.assertFalse(result.duplicate)
        self.assertEqual(order.payment_status, PaymentStatus.PAID)
        self.assertEqual(order.order_status, OrderStatus.CONFIRMED)

    def test_failed_then_paid_matches_paid_then_failed(self):
        first = make_order()
        callback(first, "failed", payment_id="pay_0")
        callback(first, "paid", payment_id="pay_1")

        second = make_order()
        callback(second, "paid", payment_id="pay_1")
        callback(second, "failed", payment_id="pay_0")

        self.assertEqual(first.payment_status, second.payment_status)
        self.assertEqual(first.order_status, second.order_status)
        self.assertEqual(first.payment_id, second.payment_id)

    def test_refund_moves_payment_status(self):
        order = make_order()
        pay(order)
        order.request_refund("Damaged in transit")
        order.collect_events()

        result = callback(order, "refunded")

        self.assertTrue(result.applied)
        self.assertEqual(order.payment_status, PaymentStatus.REFUNDED)
        self.assertEqual(order.order_status, OrderStatus.CONFIRMED)
        self.assertEqual(order.refund_request.status, RefundStatus.APPROVED)
        self.assertEqual(
            [event.notification_type for event in order.collect_events()],
            [NotificationType.REFUND_PROCESSED],
        )

    def test_refund_failed_does_not_revert_order_status(self):
        order = make_order()
        pay(order)
        callback(order, "refund_failed")
        self.assertEqual(order.payment_status, PaymentStatus.REFUND_FAILED)
        self.assertEqual(order.order_status, OrderStatus.CONFIRMED)

    def test_refund_after_refund_failed_then_stale_refund_failed(self):
        order = make_order()
        pay(order)
        callback(order, "refund_failed")
        callback(order, "refunded")
        result = callback(order, "refund_failed")
        self.assertFalse(result.applied)
        self.assertEqual(order.payment_status, PaymentStatus.REFUNDED)

    def test_refund_for_other_payment_rejected(self):
        order = make_order()
        pay(order)
        with self.assertRaises(PaymentCorrelationError):
            callback(order, "refunded", payment_id="pay_other")

    def test_refund_of_unpaid_order_rejected(self):
        order = make_order(PaymentMethod.COD)
        callback(order, "failed")
        with self.assertRaises(InvalidOrderOperation):
            callback(order, "refunded")

    def test_unknown_outcome_rejected(self):
        order = make_order()
        with self.assertRaises(InvalidOrderOperation):
            callback(order, "chargeback")

    def test_payment_for_cancelled_order_needs_review(self):
        """Test that money captured after cancellation opens a refund request."""
        order = make_order()
        order.cancel(reason="Changed my mind")
        result = pay(order)
        self.assertTrue(result.applied)
        self.assertTrue(result.review_required)
        self.assertEqual(order.order_status, OrderStatus.CANCELLED)
        self.assertEqual(order.payment_status, PaymentStatus.PAID)
        self.assertEqual(order.refund_request.status, RefundStatus.PENDING)
        self.assertIsNone(order.custom_order_id)

    def test_paid_while_shipment_failed_confirms_unconfirmed_order(self):
        """Test that payment for an order that failed booking before confirmation still confirms it."""
        codes = CodeSequence()
        order = make_order()
        order.change_status(OrderStatus.SHIPMENT_FAILED)
        result = callback(order, "paid", codes=codes)

        self.assertTrue(result.applied)
        self.assertEqual(order.order_status, OrderStatus.CONFIRMED)
        self.assertEqual(order.custom_order_id, "ODR20240301TS0001")
        order.change_status(OrderStatus.READY_TO_SHIP)
        order.check_invariants()

    def test_paid_while_shipment_failed_keeps_confirmed_order_in_place(self):
        codes = CodeSequence()
        order = make_order()
        order.change_status(OrderStatus.SHIPMENT_FAILED)
        callback(order, "paid", codes=codes)
        order.change_status(OrderStatus.READY_TO_SHIP)
        order.change_status(OrderStatus.SHIPMENT_FAILED)
        result = callback(order, "paid", codes=codes)

        self.assertFalse(result.applied)
        self.assertEqual(codes.calls, 1)
        self.assertEqual(order.order_status, OrderStatus.SHIPMENT_FAILED)
