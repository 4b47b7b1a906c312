"""
Inbound webhooks from the payment gateway and the courier.
"""
import json
import logging
from uuid import uuid4

from django.http import JsonResponse
from django.utils.dateparse import parse_datetime
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from orders.api.middleware import ErrorHandler, ValidationError
from orders.domain.delivery import DeliveryEvent
from orders.domain.errors import OrderError
from orders.domain.order import Order
from orders.domain.results import OperationResult
from orders.services import OrderService

logger = logging.getLogger(__name__)

PAYMENT_FIELDS = ("gatewayOrderId", "paymentId", "signature", "outcome")


def _read_json(request) -> dict:
    try:
        data = json.loads(request.body)
    except json.JSONDecodeError:
        raise ValidationError("Invalid JSON") from None
    if not isinstance(data, dict):
        raise ValidationError("Payload must be a JSON object")
    return data


def _parse_timestamp(value, field_name: str, required: bool = True):
    if value in (None, ""):
        if required:
            raise ValidationError(f"{field_name} is required")
        return None
    parsed = parse_datetime(str(value))
    if parsed is None:
        raise ValidationError(f"{field_name} is not an ISO 8601 datetime")
    return parsed


def _result_payload(order: Order, result: OperationResult) -> dict:
    return {
        "orderId": str(order.id),
        "applied": result.applied,
        "duplicate": result.duplicate,
        "orderStatus": order.order_status.value,
        "paymentStatus": order.payment_status.value,
        "customOrderId": order.custom_order_id,
        "reviewRequired": [
            {"reason": warning.reason, "eventCode": warning.event_code}
            for warning in result.warnings
        ],
    }


def delivery_event_from_payload(data: dict) -> DeliveryEvent:
    """Build a DeliveryEvent from the courier payload."""
    for field_name in ("code", "status"):
        if not data.get(field_name):
            raise ValidationError(f"event.{field_name} is required")
    meta = data.get("meta")
    if meta is not None and not isinstance(meta, dict):
        raise ValidationError("event.meta must be an object")
    return DeliveryEvent(
        code=str(data["code"]),
        status=str(data["status"]),
        timestamp=_parse_timestamp(data.get("timestamp"), "event.timestamp"),
        location=data.get("location") or "",
        description=data.get("description") or "",
        expected_delivery=_parse_timestamp(data.get("expectedDelivery"), "event.expectedDelivery", required=False),
        updated_by=data.get("updatedBy") or "",
        meta=meta or {},
    )


@csrf_exempt
@require_POST
def payment_webhook(request, service: OrderService | None = None):
    """Payment gateway callback: ``{gatewayOrderId, paymentId, signature, outcome}``."""
    request_id = request.headers.get("X-Request-ID") or str(uuid4())
    service = service or OrderService()
    try:
        data = _read_json(request)
        missing = [name for name in PAYMENT_FIELDS if not data.get(name)]
        if missing:
            raise ValidationError(f"Missing fields: {', '.join(missing)}")
        order, result = service.handle_payment_callback(
            gateway_order_id=str(data["gatewayOrderId"]),
            payment_id=str(data["paymentId"]),
            signature=str(data["signature"]),
            outcome=str(data["outcome"]),
        )
    except (ValidationError, OrderError) as e:
        logger.info("payment_webhook_rejected", extra={"request_id": request_id, "error": e.code})
        return ErrorHandler.handle_error(e)

    logger.info(
        "payment_webhook_processed",
        extra={"request_id": request_id, "status": order.payment_status.value, "operation": "payment_callback"},
    )
    return JsonResponse(_result_payload(order, result))


@csrf_exempt
@require_POST
def courier_webhook(request, service: OrderService | None = None):
    """Courier callback carrying one delivery event: ``{shipmentId, event: {...}}``."""
    request_id = request.headers.get("X-Request-ID") or str(uuid4())
    service = service or OrderService()
    try:
        data = _read_json(request)
        shipment_id = data.get("shipmentId")
        if not shipment_id:
            raise ValidationError("shipmentId is required")
        if not isinstance(data.get("event"), dict):
            raise ValidationError("event is required")
        event = delivery_event_from_payload(data["event"])
        order, result = service.handle_courier_event(str(shipment_id), event)
    except (ValidationError, OrderError) as e:
        logger.info("courier_webhook_rejected", extra={"request_id": request_id, "error": e.code})
        return ErrorHandler.handle_error(e)

    logger.info(
        "courier_webhook_processed",
        extra={"request_id": request_id, "event_code": event.code, "status": order.order_status.value},
    )
    return JsonResponse(_result_payload(order, result))
