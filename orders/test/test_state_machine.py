"""
Unit tests for order status transitions.
"""
from uuid import uuid4

from django.test import SimpleTestCase

from orders.domain.errors import InvalidTransition, InvariantViolation
from orders.domain.events import NotificationRequested
from orders.domain.state_machine import TERMINAL_STATUSES, TRANSITIONS
from orders.domain.statuses import NotificationPriority, NotificationType, OrderStatus, PaymentMethod
from orders.test.factories import CodeSequence, at, make_order, pay, ship


class OrderStatusMachineTest(SimpleTestCase):
    """Tests for OrderStatusMachine."""

    def test_processing_to_delivered_fails(self):
        """Test that skipping the fulfilment steps is rejected and changes nothing."""
        order = make_order(PaymentMethod.COD)
        with self.assertRaises(InvalidTransition):
            order.change_status(OrderStatus.DELIVERED)
        self.assertEqual(order.order_status, OrderStatus.PROCESSING)
        self.assertEqual(len(order.status_history), 0)
        self.assertEqual(order.pending_events, ())

    def test_terminal_states_have_no_exits(self):
        for status in TERMINAL_STATUSES - {OrderStatus.DELIVERED}:
            with self.subTest(status=status):
                self.assertEqual(TRANSITIONS[status], frozenset())
        self.assertEqual(TRANSITIONS[OrderStatus.DELIVERED], frozenset({OrderStatus.RETURNED}))

    def test_cancelled_reachable_only_before_shipping(self):
        """Test that cancelled is reachable from every pre-shipped state and no later one."""
        allowed = {status for status, targets in TRANSITIONS.items() if OrderStatus.CANCELLED in targets}
        self.assertEqual(allowed, {
            OrderStatus.PROCESSING,
            OrderStatus.CONFIRMED,
            OrderStatus.READY_TO_SHIP,
            OrderStatus.SHIPMENT_FAILED,
            OrderStatus.PAYMENT_FAILED,
        })

    def test_rto_and_returned_sources(self):
        rto_sources = {status for status, targets in TRANSITIONS.items() if OrderStatus.RTO in targets}
        returned_sources = {status for status, targets in TRANSITIONS.items() if OrderStatus.RETURNED in targets}
        self.assertEqual(rto_sources, {OrderStatus.SHIPPED, OrderStatus.OUT_FOR_DELIVERY})
        self.assertEqual(returned_sources, {OrderStatus.DELIVERED, OrderStatus.RTO})

    def test_full_cod_lifecycle_records_history_in_order(self):
        """Test that the ledger has one entry per transition, in transition order."""
        codes = CodeSequence()
        actor = uuid4()
        order = make_order(PaymentMethod.COD)
        path = [
            OrderStatus.CONFIRMED,
            OrderStatus.READY_TO_SHIP,
            OrderStatus.SHIPPED,
            OrderStatus.OUT_FOR_DELIVERY,
            OrderStatus.DELIVERED,
            OrderStatus.RETURNED,
        ]
        for minute, status in enumerate(path):
            order.change_status(status, actor=actor, remarks=f"step {minute}", now=at(10, minute), code_factory=codes)

        self.assertEqual([entry.status for entry in order.status_history], path)
        self.assertEqual([entry.changed_at for entry in order.status_history], [at(10, m) for m in range(len(path))])
        self.assertTrue(all(entry.actor_id == actor for entry in order.status_history))
        self.assertEqual(codes.calls, 1)

    def test_prepaid_cannot_confirm_without_payment(self):
        """Test that prepaid orders only move past processing once paid."""
        order = make_order(PaymentMethod.PREPAID)
        with self.assertRaises(InvalidTransition):
            order.change_status(OrderStatus.CONFIRMED, code_factory=CodeSequence())
        self.assertIsNone(order.custom_order_id)

    def test_confirming_assigns_order_code_once(self):
        codes = CodeSequence()
        order = make_order(PaymentMethod.COD)
        order.change_status(OrderStatus.CONFIRMED, code_factory=codes)
        code = order.custom_order_id
        order.change_status(OrderStatus.SHIPMENT_FAILED)
        order.change_status(OrderStatus.READY_TO_SHIP)
        self.assertEqual(order.custom_order_id, code)
        self.assertEqual(codes.calls, 1)

    def test_confirming_without_code_generator_is_rejected(self):
        order = make_order(PaymentMethod.COD)
        with self.assertRaises(InvariantViolation):
            order.change_status(OrderStatus.CONFIRMED)
        self.assertEqual(order.order_status, OrderStatus.PROCESSING)
        self.assertEqual(len(order.status_history), 0)

    def test_unknown_status_is_invalid_transition(self):
        order = make_order(PaymentMethod.COD)
        with self.assertRaises(InvalidTransition):
            order.change_status("teleported")

    def test_transition_requests_notification(self):
        """Test that every successful transition emits a notification request."""
        order = ship(make_order(PaymentMethod.PREPAID))
        order.collect_events()
        order.change_status(OrderStatus.DELIVERED)

        events = order.collect_events()
        self.assertEqual(len(events), 1)
        event = events[0]
        self.assertIsInstance(event, NotificationRequested)
        self.assertEqual(event.notification_type, NotificationType.ORDER_DELIVERED)
        self.assertEqual(event.user_id, order.user_id)
        self.assertEqual(event.aggregate_id, order.id)
        self.assertEqual(event.order_status, OrderStatus.DELIVERED)

    def test_payment_confirmation_notification_is_high_priority(self):
        order = make_order(PaymentMethod.PREPAID)
        pay(order)
        event = order.collect_events()[-1]
        self.assertEqual(event.notification_type, NotificationType.PAYMENT_CONFIRMATION)
        self.assertEqual(event.priority, NotificationPriority.HIGH)
        self.assertEqual(event.custom_order_id, order.custom_order_id)

    def test_shipment_failed_before_confirmation_must_confirm_first(self):
        """Test that an unconfirmed order cannot skip confirmed on the way back from shipment_failed."""
        codes = CodeSequence()
        order = make_order(PaymentMethod.COD)
        order.change_status(OrderStatus.SHIPMENT_FAILED)
        with self.assertRaises(InvalidTransition):
            order.change_status(OrderStatus.READY_TO_SHIP)
        self.assertEqual(order.order_status, OrderStatus.SHIPMENT_FAILED)
        self.assertIsNone(order.custom_order_id)

        order.change_status(OrderStatus.CONFIRMED, code_factory=codes)
        order.change_status(OrderStatus.READY_TO_SHIP)
        self.assertEqual(order.custom_order_id, "ODR20240301TS0001")
        self.assertEqual(
            [entry.status for entry in order.status_history],
            [OrderStatus.SHIPMENT_FAILED, OrderStatus.CONFIRMED, OrderStatus.READY_TO_SHIP],
        )
        order.check_invariants()
