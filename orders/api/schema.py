"""
GraphQL schema definition using Ariadne.
"""
from datetime import datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from uuid import UUID

from ariadne import (
    MutationType,
    ObjectType,
    QueryType,
    ScalarType,
    format_error,
    load_schema_from_path,
    make_executable_schema,
)
from graphql import GraphQLError

from orders.domain.errors import OrderError
from orders.services import OrderService

# Load schema from .graphql files
SCHEMAS_DIR = Path(__file__).parent / "schemas"
type_defs = load_schema_from_path(SCHEMAS_DIR)

query = QueryType()
mutation = MutationType()
order = ObjectType("Order")
order_page = ObjectType("OrderPage")
line_item = ObjectType("LineItem")
shipping_address = ObjectType("ShippingAddress")
coupon_application = ObjectType("CouponApplication")
refund_request = ObjectType("RefundRequest")
status_history_entry = ObjectType("StatusHistoryEntry")
delivery_event = ObjectType("DeliveryEvent")
delivery_summary = ObjectType("DeliverySummary")


def _service(info) -> OrderService:
    return info.context.get("service") or OrderService()


@query.field("order")
def resolve_order(_, info, id):
    """Resolve order query."""
    return _service(info).get_order(id)


@query.field("ordersByUser")
def resolve_orders_by_user(_, info, userId, limit=20, offset=0):
    """Resolve orders by user query with pagination."""
    return _service(info).get_orders_by_user(userId, limit=limit, offset=offset)


@query.field("orders")
def resolve_orders(
    _, info, status=None, paymentStatus=None, paymentMethod=None,
    userId=None, needsReview=None, limit=20, offset=0,
):
    """Resolve the admin order listing with filters and pagination."""
    return _service(info).list_orders(
        status=status,
        payment_status=paymentStatus,
        payment_method=paymentMethod,
        user_id=userId,
        needs_review=needsReview,
        limit=limit,
        offset=offset,
    )


@query.field("deliverySummary")
def resolve_delivery_summary(_, info, orderId):
    return _service(info).delivery_summary(orderId)


@mutation.field("placeOrder")
def resolve_place_order(_, info, input: dict):
    """Resolve place order mutation."""
    address = input["shippingAddress"]
    shipping = {
        "name": address["name"],
        "street": address["street"],
        "city": address["city"],
        "state": address["state"],
        "zip_code": address["zipCode"],
        "phone": address["phone"],
        "email": address.get("email"),
        "relationship": address.get("relationship"),
    }
    if address.get("country"):
        shipping["country"] = address["country"]

    return _service(info).place_order(
        user_id=input["userId"],
        items=input["items"],
        shipping_address=shipping,
        payment_method=input["paymentMethod"],
        delivery=input.get("delivery"),
        coupon_code=input.get("couponCode"),
    )


@mutation.field("attachGatewayOrder")
def resolve_attach_gateway_order(_, info, orderId, gatewayOrderId):
    return _service(info).attach_gateway_order(orderId, gatewayOrderId)


@mutation.field("applyCoupon")
def resolve_apply_coupon(_, info, orderId, code):
    return _service(info).apply_coupon(orderId, code)


@mutation.field("changeOrderStatus")
def resolve_change_order_status(_, info, orderId, status, remarks=None, actorId=None):
    """Resolve admin status change mutation."""
    return _service(info).change_status(orderId, status, actor_id=actorId, remarks=remarks or "")


@mutation.field("assignShipment")
def resolve_assign_shipment(_, info, orderId, shipmentId, labelUrl=None, provider=None):
    return _service(info).assign_shipment(
        orderId, shipmentId, label_url=labelUrl or "", provider=provider or ""
    )


@mutation.field("cancelOrder")
def resolve_cancel_order(_, info, orderId, reason=None, actorId=None):
    return _service(info).cancel_order(orderId, actor_id=actorId, reason=reason or "")


@mutation.field("requestRefund")
def resolve_request_refund(_, info, orderId, reason):
    return _service(info).request_refund(orderId, reason)


@mutation.field("resolveRefund")
def resolve_resolve_refund(_, info, orderId, approve):
    return _service(info).resolve_refund(orderId, approve)


@mutation.field("clearReview")
def resolve_clear_review(_, info, orderId, actorId=None):
    return _service(info).clear_review(orderId, actor_id=actorId)


order.set_alias("userId", "user_id")
order.set_alias("customOrderId", "custom_order_id")
order.set_alias("shippingAddress", "shipping_address")
order.set_alias("refundRequest", "refund_request")
order.set_alias("gatewayOrderId", "gateway_order_id")
order.set_alias("createdAt", "created_at")
order.set_alias("items", "line_items")
order.set_alias("needsReview", "needs_review")
order.set_alias("reviewReason", "review_reason")

order_page.set_alias("hasNext", "has_next")


@order.field("orderStatus")
def resolve_order_status(obj, info):
    return obj.order_status.value


@order.field("paymentStatus")
def resolve_payment_status(obj, info):
    return obj.payment_status.value


@order.field("paymentMethod")
def resolve_payment_method(obj, info):
    return obj.payment_method.value


@order.field("subtotal")
def resolve_subtotal(obj, info):
    return obj.subtotal.amount


@order.field("deliveryCost")
def resolve_delivery_cost(obj, info):
    return obj.delivery.cost.amount


@order.field("discount")
def resolve_discount(obj, info):
    return obj.discount.amount


@order.field("totalAmount")
def resolve_total_amount(obj, info):
    return obj.total_amount.amount


@order.field("statusHistory")
def resolve_status_history(obj, info):
    return list(obj.status_history)


@order.field("delivery")
def resolve_order_delivery(obj, info):
    return obj.delivery_summary()


line_item.set_alias("productId", "product_id")


@line_item.field("unitPrice")
def resolve_unit_price(obj, info):
    return obj.unit_price.amount


@line_item.field("subtotal")
def resolve_line_subtotal(obj, info):
    return obj.subtotal.amount


shipping_address.set_alias("zipCode", "zip_code")

coupon_application.set_alias("discountValue", "discount_value")


@coupon_application.field("discountType")
def resolve_discount_type(obj, info):
    return obj.discount_type.value


@coupon_application.field("discountApplied")
def resolve_discount_applied(obj, info):
    return obj.discount_applied.amount


refund_request.set_alias("requestedAt", "requested_at")


@refund_request.field("status")
def resolve_refund_status(obj, info):
    return obj.status.value


status_history_entry.set_alias("changedAt", "changed_at")
status_history_entry.set_alias("actorId", "actor_id")


@status_history_entry.field("status")
def resolve_history_status(obj, info):
    return obj.status.value


delivery_event.set_alias("expectedDelivery", "expected_delivery")
delivery_event.set_alias("updatedBy", "updated_by")

delivery_summary.set_alias("trackingId", "tracking_id")
delivery_summary.set_alias("lastMileStatus", "last_mile_status")
delivery_summary.set_alias("expectedDeliveryDate", "expected_delivery_date")
delivery_summary.set_alias("actualDeliveryDate", "actual_delivery_date")
delivery_summary.set_alias("deliveryAttempts", "delivery_attempts")
delivery_summary.set_alias("receivedBy", "received_by")
delivery_summary.set_alias("proofOfDelivery", "proof_of_delivery")
delivery_summary.set_alias("customerInstructions", "customer_instructions")


# Define custom scalars
decimal_scalar = ScalarType("Decimal")
uuid_scalar = ScalarType("UUID")
datetime_scalar = ScalarType("DateTime")


@decimal_scalar.serializer
def serialize_decimal(value):
    """Serialize Decimal to string."""
    return str(value)


@decimal_scalar.value_parser
def parse_decimal_value(value):
    """Parse Decimal from string."""
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"Not a decimal: {value!r}") from None


@uuid_scalar.serializer
def serialize_uuid(value):
    """Serialize UUID to string."""
    return str(value)


@uuid_scalar.value_parser
def parse_uuid_value(value):
    """Parse UUID from string."""
    if isinstance(value, UUID):
        return value
    return UUID(str(value))


@datetime_scalar.serializer
def serialize_datetime(value):
    """Serialize DateTime to ISO format string."""
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


@datetime_scalar.value_parser
def parse_datetime_value(value):
    """Parse DateTime from string."""
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def format_order_error(error: GraphQLError, debug: bool = False) -> dict:
    """Default Ariadne formatting plus the domain error code in extensions."""
    formatted = format_error(error, debug)
    original = error.original_error
    if isinstance(original, OrderError):
        formatted["message"] = original.message
        formatted.setdefault("extensions", {})["code"] = original.code
    return formatted


# Create executable schema
schema = make_executable_schema(
    type_defs,
    query,
    mutation,
    order,
    order_page,
    line_item,
    shipping_address,
    coupon_application,
    refund_request,
    status_history_entry,
    delivery_event,
    delivery_summary,
    datetime_scalar,
    decimal_scalar,
    uuid_scalar,
)
