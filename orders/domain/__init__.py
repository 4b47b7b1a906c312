from orders.domain.delivery import DeliveryEvent, DeliveryTracker
from orders.domain.discounts import CouponDefinition, DiscountEngine
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
from orders.domain.payments import PaymentReconciler
from orders.domain.state_machine import OrderStatusMachine

__all__ = [
    "Customization",
    "CouponDefinition",
    "DeliveryEvent",
    "DeliveryInfo",
    "DeliveryTracker",
    "DiscountEngine",
    "LineItem",
    "Money",
    "Order",
    "OrderStatusMachine",
    "PaymentReconciler",
    "RefundRequest",
    "ShippingAddress",
    "StatusHistoryEntry",
    "StatusHistoryLedger",
]
