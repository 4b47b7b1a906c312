"""
Application services for the order lifecycle.

Every mutation is a read-modify-write cycle on one order: load the current
version, apply one aggregate operation, save conditioned on the version being
unchanged. A concurrent writer makes the save fail with VersionConflict and
the whole cycle is retried with backoff, up to a bounded number of attempts.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, TypeVar
from uuid import UUID

from django.db import transaction
from django.utils import timezone

from orders.conf import orders_setting
from orders.domain.delivery import DeliveryEvent, DeliveryInfoView
from orders.domain.errors import (
    InvalidCoupon,
    InvalidOrderOperation,
    OrderNotFound,
    PaymentCorrelationError,
    VersionConflict,
)
from orders.domain.money import Money
from orders.domain.order import Customization, DeliveryInfo, LineItem, Order, ShippingAddress
from orders.domain.results import OperationResult
from orders.domain.statuses import GatewayOutcome, OrderStatus, PaymentMethod, PaymentStatus
from orders.infra.order_codes import generate_order_code
from orders.infra.outbox import OutboxRepository
from orders.infra.pii_masker import mask_pii_in_dict, mask_uuid
from orders.infra.repositories import CatalogRepository, CouponRepository, OrderRepository
from orders.infra.retry import retry_with_backoff


logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_PAGE_SIZE = 100


def _changed(result) -> bool:
    if result is False:
        return False
    if isinstance(result, OperationResult):
        return result.applied
    return True


@dataclass(frozen=True)
class OrderPage:
    orders: list[Order]
    total: int
    limit: int
    offset: int

    @property
    def has_next(self) -> bool:
        return self.offset + len(self.orders) < self.total


class OrderService:
    """Service for order operations."""

    def __init__(
        self,
        order_repo: OrderRepository | None = None,
        catalog_repo: CatalogRepository | None = None,
        coupon_repo: CouponRepository | None = None,
        outbox_repo: OutboxRepository | None = None,
        code_factory: Callable[[], str] | None = None,
    ):
        self.order_repo = order_repo or OrderRepository()
        self.catalog_repo = catalog_repo or CatalogRepository()
        self.coupon_repo = coupon_repo or CouponRepository()
        self.outbox_repo = outbox_repo or OutboxRepository()
        self.code_factory = code_factory or generate_order_code

    # Queries

    def get_order(self, order_id: UUID) -> Order:
        return self.order_repo.load(order_id)

    def get_orders_by_user(self, user_id: UUID, limit: int = 50, offset: int = 0) -> list[Order]:
        """Get orders by user with pagination."""
        return self.order_repo.get_by_user(user_id, limit=limit, offset=offset)

    def list_orders(
        self,
        status: str | None = None,
        payment_status: str | None = None,
        payment_method: str | None = None,
        user_id: UUID | None = None,
        needs_review: bool | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> OrderPage:
        """Admin listing: filtered, newest first, with the total count."""
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise InvalidOrderOperation(f"limit must be between 1 and {MAX_PAGE_SIZE}")
        if offset < 0:
            raise InvalidOrderOperation("offset cannot be negative")
        filters = ((status, OrderStatus), (payment_status, PaymentStatus), (payment_method, PaymentMethod))
        for value, enum_cls in filters:
            if value:
                try:
                    enum_cls(value)
                except ValueError:
                    raise InvalidOrderOperation(f"Unknown {enum_cls.__name__} filter: {value!r}") from None

        orders, total = self.order_repo.search(
            status=status,
            payment_status=payment_status,
            payment_method=payment_method,
            user_id=user_id,
            needs_review=needs_review,
            limit=limit,
            offset=offset,
        )
        return OrderPage(orders=orders, total=total, limit=limit, offset=offset)

    def delivery_summary(self, order_id: UUID) -> DeliveryInfoView:
        return self.order_repo.load(order_id).delivery_summary()

    # Checkout

    @transaction.atomic
    def place_order(
        self,
        user_id: UUID,
        items: list[dict],
        shipping_address: dict,
        payment_method: str,
        delivery: dict | None = None,
        coupon_code: str | None = None,
    ) -> Order:
        """Create an order with unit prices snapshotted from the catalog."""
        if not items:
            raise InvalidOrderOperation("Order must contain at least one item")
        try:
            method = PaymentMethod(payment_method)
        except ValueError:
            raise InvalidOrderOperation(f"Unknown payment method: {payment_method!r}") from None

        product_ids = [UUID(str(item["productId"])) for item in items]
        prices = self.catalog_repo.get_unit_prices(product_ids)

        line_items = []
        for product_id, item in zip(product_ids, items):
            if product_id not in prices:
                raise InvalidOrderOperation(f"Product {product_id} not found or inactive")
            customization = item.get("customization")
            line_items.append(LineItem(
                product_id=product_id,
                sku=item["sku"],
                quantity=int(item["quantity"]),
                unit_price=Money.of(prices[product_id]),
                customization=Customization(
                    caption=customization.get("caption") or "",
                    description=customization.get("description") or "",
                    files=tuple(customization.get("files") or ()),
                ) if customization else None,
            ))

        coupon = None
        if coupon_code:
            coupon = self.coupon_repo.get_by_code(coupon_code)
            if coupon is None:
                raise InvalidCoupon(f"Invalid coupon code: {coupon_code}")

        delivery = delivery or {}
        order = Order.place(
            user_id=user_id,
            line_items=line_items,
            shipping_address=ShippingAddress(**shipping_address),
            payment_method=method,
            delivery=DeliveryInfo(
                mode=delivery.get("mode") or "manual",
                cost=Money.of(delivery.get("cost") or "0"),
                estimated_delivery_days=int(delivery.get("estimatedDeliveryDays") or 0),
                customer_instructions=delivery.get("customerInstructions") or "",
            ),
            coupon=coupon,
            now=timezone.now(),
        )
        self.order_repo.save(order, expected_version=0)
        self.outbox_repo.add_events_best_effort(order.collect_events(), "Order")

        logger.info(
            "order_placed",
            extra={
                "order_id": mask_uuid(str(order.id)),
                "user_id": mask_uuid(str(user_id)),
                "status": order.order_status.value,
                "operation": "place_order",
            },
        )
        logger.debug("order_shipping_address", extra={"address": mask_pii_in_dict(shipping_address)})
        return order

    # Mutations on existing orders

    def attach_gateway_order(self, order_id: UUID, gateway_order_id: str) -> Order:
        order, _ = self._mutate(
            "attach_gateway_order",
            lambda: self.order_repo.load(order_id),
            lambda order: order.attach_gateway_order(gateway_order_id),
        )
        return order

    def apply_coupon(self, order_id: UUID, coupon_code: str) -> Order:
        coupon = self.coupon_repo.get_by_code(coupon_code)
        if coupon is None:
            raise InvalidCoupon(f"Invalid coupon code: {coupon_code}")
        order, _ = self._mutate(
            "apply_coupon",
            lambda: self.order_repo.load(order_id),
            lambda order: order.apply_coupon(coupon, now=timezone.now()),
        )
        return order

    def handle_payment_callback(
        self,
        gateway_order_id: str,
        payment_id: str,
        signature: str,
        outcome: GatewayOutcome | str,
    ) -> tuple[Order, OperationResult]:
        """Apply a payment gateway callback to the order it correlates with."""

        def load() -> Order:
            order = self.order_repo.get_by_gateway_order_id(gateway_order_id)
            if order is None:
                raise PaymentCorrelationError(f"No order for gateway order {gateway_order_id!r}")
            return order

        def apply(order: Order) -> OperationResult:
            return order.apply_gateway_result(
                gateway_order_id, payment_id, signature, outcome,
                now=timezone.now(), code_factory=self.code_factory,
            )

        try:
            order, result = self._mutate("payment_callback", load, apply)
        except PaymentCorrelationError as e:
            logger.warning(
                "payment_correlation_mismatch",
                extra={"operation": "payment_callback", "error": str(e)},
            )
            raise

        logger.info(
            "payment_callback_applied" if result.applied else "payment_callback_ignored",
            extra={
                "order_id": mask_uuid(str(order.id)),
                "status": order.payment_status.value,
                "operation": "payment_callback",
            },
        )
        for warning in result.warnings:
            logger.warning(
                "payment_review_required",
                extra={"order_id": mask_uuid(str(order.id)), "error": warning.reason},
            )
        return order, result

    def handle_courier_event(self, shipment_id: str, event: DeliveryEvent) -> tuple[Order, OperationResult]:
        """Record a courier event on the order carrying ``shipment_id``."""

        def load() -> Order:
            order = self.order_repo.get_by_shipment_id(shipment_id)
            if order is None:
                raise OrderNotFound(f"No order for shipment {shipment_id}")
            return order

        order, result = self._mutate(
            "courier_event",
            load,
            lambda order: order.record_delivery_event(event, now=timezone.now()),
        )
        for warning in result.warnings:
            logger.warning(
                "delivery_review_required",
                extra={
                    "order_id": mask_uuid(str(order.id)),
                    "event_code": warning.event_code,
                    "error": warning.reason,
                },
            )
        return order, result

    def change_status(
        self,
        order_id: UUID,
        target: OrderStatus | str,
        actor_id: UUID | None = None,
        remarks: str = "",
    ) -> Order:
        order, _ = self._mutate(
            "change_status",
            lambda: self.order_repo.load(order_id),
            lambda order: order.change_status(
                target, actor=actor_id, remarks=remarks,
                now=timezone.now(), code_factory=self.code_factory,
            ),
        )
        return order

    def assign_shipment(self, order_id: UUID, shipment_id: str, label_url: str = "", provider: str = "") -> Order:
        order, _ = self._mutate(
            "assign_shipment",
            lambda: self.order_repo.load(order_id),
            lambda order: order.assign_shipment(shipment_id, label_url=label_url, provider=provider),
        )
        return order

    def cancel_order(self, order_id: UUID, actor_id: UUID | None = None, reason: str = "") -> Order:
        order, _ = self._mutate(
            "cancel_order",
            lambda: self.order_repo.load(order_id),
            lambda order: order.cancel(actor=actor_id, reason=reason, now=timezone.now()),
        )
        return order

    def request_refund(self, order_id: UUID, reason: str) -> Order:
        order, _ = self._mutate(
            "request_refund",
            lambda: self.order_repo.load(order_id),
            lambda order: order.request_refund(reason, now=timezone.now()),
        )
        return order

    def resolve_refund(self, order_id: UUID, approve: bool) -> Order:
        order, _ = self._mutate(
            "resolve_refund",
            lambda: self.order_repo.load(order_id),
            lambda order: order.resolve_refund(approve),
        )
        return order

    def clear_review(self, order_id: UUID, actor_id: UUID | None = None) -> Order:
        order, reason = self._mutate(
            "clear_review",
            lambda: self.order_repo.load(order_id),
            lambda order: order.clear_review(),
        )
        logger.info(
            "order_review_cleared",
            extra={
                "order_id": mask_uuid(str(order.id)),
                "user_id": mask_uuid(str(actor_id)) if actor_id else None,
                "error": reason,
            },
        )
        return order

    def _mutate(
        self,
        operation: str,
        load: Callable[[], Order],
        mutate: Callable[[Order], T],
    ) -> tuple[Order, T]:
        """Run load/mutate/save in a transaction, retrying on VersionConflict."""

        def attempt() -> tuple[Order, T]:
            order = load()
            result = mutate(order)
            if _changed(result):
                self.order_repo.save(order)
                self.outbox_repo.add_events_best_effort(order.collect_events(), "Order")
            return order, result

        attempt.__name__ = operation
        run = retry_with_backoff(
            max_retries=orders_setting("VERSION_CONFLICT_RETRIES"),
            initial_delay=orders_setting("VERSION_CONFLICT_BACKOFF"),
            max_delay=1.0,
            exceptions=(VersionConflict,),
        )(transaction.atomic(attempt))
        return run()
