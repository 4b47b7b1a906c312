"""
Closed status and mode enumerations for the order aggregate.
"""
from enum import Enum


class OrderStatus(str, Enum):
    """Overall order status."""
    PROCESSING = "processing"
    CONFIRMED = "confirmed"
    READY_TO_SHIP = "ready_to_ship"
    SHIPPED = "shipped"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    SHIPMENT_FAILED = "shipment_failed"
    PAYMENT_FAILED = "payment_failed"
    RTO = "rto"
    RETURNED = "returned"


class PaymentStatus(str, Enum):
    """Payment status as reported by the gateway."""
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"
    REFUND_FAILED = "refund_failed"


class PaymentMethod(str, Enum):
    COD = "COD"
    PREPAID = "Prepaid"


class GatewayOutcome(str, Enum):
    """Outcome carried by a payment gateway callback."""
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"
    REFUND_FAILED = "refund_failed"


class DeliveryMode(str, Enum):
    MANUAL = "manual"
    AUTOMATIC = "automatic"
    MANUAL_AUTOMATIC = "manual+automatic"
    AUTOMATIC_MANUAL = "automatic+manual"


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class RefundStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class NotificationType(str, Enum):
    ORDER_CREATED = "order_created"
    ORDER_STATUS_UPDATE = "order_status_update"
    PAYMENT_CONFIRMATION = "payment_confirmation"
    ORDER_CANCELLED = "order_cancelled"
    ORDER_DELIVERED = "order_delivered"
    REFUND_PROCESSED = "refund_processed"


class NotificationPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"
