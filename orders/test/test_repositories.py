"""
Integration tests for order persistence.
"""
import re
from decimal import Decimal
from uuid import uuid4

from django.test import TestCase, override_settings

from orders.domain.errors import DuplicateIdentifier, OrderNotFound, VersionConflict
from orders.domain.statuses import OrderStatus, PaymentMethod, PaymentStatus
from orders.infra.models import (
    CouponRecord,
    DeliveryEventRecord,
    LineItemRecord,
    OrderRecord,
    ProductRecord,
    StatusHistoryRecord,
)
from orders.infra.order_codes import generate_order_code
from orders.infra.repositories import CatalogRepository, CouponRepository, OrderRepository
from orders.test.factories import CodeSequence, at, courier_event, make_item, make_order, pay, ship


class OrderRepositoryTest(TestCase):
    """Tests for OrderRepository."""

    def setUp(self):
        self.repo = OrderRepository()

    def test_insert_and_load(self):
        order = make_order(items=[make_item("250.00", 2, sku="TEE-M"), make_item("99.50", 1, sku="CAP")])
        version = self.repo.save(order)

        self.assertEqual(version, 1)
        loaded = self.repo.load(order.id)
        self.assertEqual(loaded.version, 1)
        self.assertEqual(loaded.order_status, OrderStatus.PROCESSING)
        self.assertEqual(loaded.payment_method, PaymentMethod.PREPAID)
        self.assertEqual([item.sku for item in loaded.line_items], ["TEE-M", "CAP"])
        self.assertEqual(loaded.total_amount.amount, Decimal("599.50"))
        self.assertEqual(loaded.shipping_address, order.shipping_address)
        self.assertEqual(loaded.gateway_order_id, "gw_order_1")

    def test_load_unknown_order(self):
        self.assertIsNone(self.repo.get_by_id(uuid4()))
        with self.assertRaises(OrderNotFound):
            self.repo.load(uuid4())

    def test_update_bumps_version(self):
        order = make_order()
        self.repo.save(order)
        loaded = self.repo.load(order.id)
        pay(loaded)
        self.assertEqual(self.repo.save(loaded), 2)

        stored = OrderRecord.objects.get(id=order.id)
        self.assertEqual(stored.version, 2)
        self.assertEqual(stored.payment_status, PaymentStatus.PAID.value)
        self.assertEqual(stored.custom_order_id, loaded.custom_order_id)

    def test_stale_write_raises_version_conflict(self):
        """Test that the second of two concurrent writers loses."""
        order = make_order()
        self.repo.save(order)
        first = self.repo.load(order.id)
        second = self.repo.load(order.id)

        pay(first)
        self.repo.save(first)
        second.cancel(reason="Too slow")

        with self.assertRaises(VersionConflict):
            self.repo.save(second)
        stored = self.repo.load(order.id)
        self.assertEqual(stored.order_status, OrderStatus.CONFIRMED)
        self.assertEqual(stored.version, 2)
        self.assertEqual(StatusHistoryRecord.objects.filter(order_id=order.id).count(), 1)

    def test_history_rows_are_insert_only(self):
        """Test that saving appends new history rows and leaves stored ones alone."""
        order = make_order()
        self.repo.save(order)
        order = self.repo.load(order.id)
        pay(order)
        self.repo.save(order)
        first_row = StatusHistoryRecord.objects.get(order_id=order.id, sequence=1)

        order = self.repo.load(order.id)
        order.change_status(OrderStatus.READY_TO_SHIP, remarks="Packed")
        self.repo.save(order)

        rows = list(StatusHistoryRecord.objects.filter(order_id=order.id).order_by("sequence"))
        self.assertEqual([row.sequence for row in rows], [1, 2])
        self.assertEqual([row.status for row in rows], ["confirmed", "ready_to_ship"])
        self.assertEqual(rows[0].pk, first_row.pk)
        self.assertEqual(rows[0].updated_at, first_row.updated_at)
        self.assertEqual(len(self.repo.load(order.id).status_history), 2)

    def test_line_items_written_once(self):
        order = make_order()
        self.repo.save(order)
        order = self.repo.load(order.id)
        pay(order)
        self.repo.save(order)
        self.assertEqual(LineItemRecord.objects.filter(order_id=order.id).count(), 1)

    def test_delivery_events_round_trip_in_order(self):
        order = ship(make_order())
        self.repo.save(order)
        order = self.repo.load(order.id)
        order.record_delivery_event(courier_event("in_transit", at(12)))
        order.record_delivery_event(courier_event("picked_up", at(8), meta={"scan_type": "PU"}))
        self.repo.save(order)

        order = self.repo.load(order.id)
        order.record_delivery_event(courier_event("manifested", at(7)))
        duplicate = order.record_delivery_event(courier_event("in_transit", at(12)))
        self.repo.save(order)

        self.assertFalse(duplicate.applied)
        loaded = self.repo.load(order.id)
        self.assertEqual([e.code for e in loaded.delivery_log.events], ["manifested", "picked_up", "in_transit"])
        self.assertEqual(loaded.delivery_log.events[1].meta["scan_type"], "PU")
        self.assertEqual(DeliveryEventRecord.objects.filter(order_id=order.id).count(), 3)

    def test_shipment_id_is_unique(self):
        """Test that a waybill cannot be assigned to two orders."""
        first = ship(make_order(), shipment_id="AWB-SHARED", codes=CodeSequence("ODR-A"))
        self.repo.save(first)
        second = ship(make_order(gateway_order_id="gw_order_2"), shipment_id="AWB-SHARED", codes=CodeSequence("ODR-B"))
        with self.assertRaises(DuplicateIdentifier):
            self.repo.save(second)

    def test_order_code_is_unique(self):
        first = make_order()
        pay(first, codes=CodeSequence("ODR-DUP"))
        self.repo.save(first)
        second = make_order(gateway_order_id="gw_order_2")
        pay(second, codes=CodeSequence("ODR-DUP"))
        with self.assertRaises(DuplicateIdentifier):
            self.repo.save(second)

    def test_lookups(self):
        order = ship(make_order(), shipment_id="AWB-LOOKUP")
        self.repo.save(order)
        self.assertEqual(self.repo.get_by_gateway_order_id("gw_order_1").id, order.id)
        self.assertEqual(self.repo.get_by_shipment_id("AWB-LOOKUP").id, order.id)
        self.assertIsNone(self.repo.get_by_shipment_id("AWB-MISSING"))

    def test_get_by_user_newest_first(self):
        user_id = uuid4()
        ids = []
        for day in (1, 3, 2):
            order = make_order(gateway_order_id=None)
            order.user_id = user_id
            order.created_at = at(10, day=day)
            self.repo.save(order)
            ids.append(order.id)

        orders = self.repo.get_by_user(user_id)
        self.assertEqual([o.id for o in orders], [ids[1], ids[2], ids[0]])
        self.assertEqual([o.id for o in self.repo.get_by_user(user_id, limit=1, offset=1)], [ids[2]])


class CollaboratorRepositoryTest(TestCase):
    """Tests for catalog, coupon and order code lookups."""

    def test_catalog_returns_active_prices_only(self):
        active = ProductRecord.objects.create(name="Mug", price=Decimal("249.00"))
        inactive = ProductRecord.objects.create(name="Old mug", price=Decimal("99.00"), is_active=False)
        prices = CatalogRepository().get_unit_prices([active.id, inactive.id, uuid4()])
        self.assertEqual(prices, {active.id: Decimal("249.00")})

    def test_coupon_lookup_is_case_insensitive(self):
        CouponRecord.objects.create(code="WELCOME10", discount_type="percentage", discount_value=Decimal("10"))
        coupon = CouponRepository().get_by_code(" welcome10 ")
        self.assertEqual(coupon.code, "WELCOME10")
        self.assertEqual(coupon.discount_value, Decimal("10"))
        self.assertIsNone(CouponRepository().get_by_code("NOPE"))

    @override_settings(ORDERS={"ORDER_CODE_PREFIX": "ODR"})
    def test_order_code_format_and_daily_serial(self):
        first = generate_order_code(at(10))
        second = generate_order_code(at(11))
        self.assertRegex(first, r"^ODR20240301[A-Z0-9]{2}0001$")
        self.assertRegex(second, r"^ODR20240301[A-Z0-9]{2}0002$")
        self.assertTrue(re.match(r"^ODR20240302[A-Z0-9]{2}0001$", generate_order_code(at(10, day=2))))
