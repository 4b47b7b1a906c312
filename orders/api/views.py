"""
GraphQL view with idempotency and logging support.
"""
import hashlib
import json
import logging
from uuid import UUID, uuid4

from ariadne import graphql_sync
from django.conf import settings
from django.db import IntegrityError, transaction
from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from orders.api.middleware import ErrorHandler
from orders.api.schema import format_order_error, schema
from orders.infra.models import IdempotencyKey
from orders.infra.pii_masker import mask_uuid
from orders.services import OrderService

logger = logging.getLogger(__name__)

# Mutation field name -> stored operation type for idempotency keys.
MUTATION_OPERATIONS = {
    "placeOrder": "PLACE_ORDER",
    "cancelOrder": "CANCEL_ORDER",
    "requestRefund": "REQUEST_REFUND",
}


class OrderEngineGraphQLView:
    """GraphQL view with idempotency and structured logging."""

    def __init__(self, service: OrderService | None = None):
        self.service = service or OrderService()

    def dispatch(self, request, *args, **kwargs):
        """Handle GraphQL request with idempotency."""
        request_id = request.headers.get("X-Request-ID") or str(uuid4())
        idempotency_key = request.headers.get("Idempotency-Key")
        user_id = request.headers.get("X-User-ID")

        logger.info(
            "graphql_request",
            extra={
                "request_id": request_id,
                "user_id": mask_uuid(user_id) if user_id else None,
                "idempotency_key": idempotency_key[:8] + "..." if idempotency_key else None,
                "operation": "graphql",
            },
        )

        if request.method == "GET":
            return JsonResponse({"message": "GraphQL endpoint. Use POST for queries."})

        try:
            data = json.loads(request.body)
        except json.JSONDecodeError:
            return ErrorHandler.error_response("VALIDATION_ERROR", "Invalid JSON")
        if not isinstance(data, dict):
            return ErrorHandler.error_response("VALIDATION_ERROR", "GraphQL request must be a JSON object")

        query = data.get("query") or ""
        if idempotency_key and user_id and query.lstrip().startswith("mutation"):
            response = self._idempotent(request, request_id, idempotency_key, user_id, data)
        else:
            response = self._execute(request, data)

        logger.info(
            "graphql_response",
            extra={
                "request_id": request_id,
                "user_id": mask_uuid(user_id) if user_id else None,
                "status": response.status_code,
            },
        )
        return response

    def _idempotent(self, request, request_id: str, idempotency_key: str, user_id: str, data: dict) -> JsonResponse:
        """Replay the stored response for a repeated mutation, or run and store it."""
        try:
            user_uuid = UUID(user_id)
        except ValueError:
            return ErrorHandler.error_response("VALIDATION_ERROR", "X-User-ID must be a UUID")

        query = data.get("query") or ""
        operation = self._extract_operation(query)
        request_hash = self._create_request_hash(query, data.get("variables") or {})

        existing = IdempotencyKey.objects.filter(
            key=idempotency_key,
            user_id=user_uuid,
            operation=operation,
        ).first()

        if existing:
            if existing.request_hash == request_hash:
                logger.info(
                    "idempotent_request_cached",
                    extra={
                        "request_id": request_id,
                        "idempotency_key": idempotency_key,
                        "operation": operation,
                    },
                )
                return JsonResponse(existing.response_payload, safe=False)

            logger.warning(
                "idempotency_key_conflict",
                extra={
                    "request_id": request_id,
                    "idempotency_key": idempotency_key,
                    "operation": operation,
                },
            )
            return ErrorHandler.error_response(
                "DUPLICATE_REQUEST", "Idempotency key already used with different request"
            )

        response = self._execute(request, data)
        payload = json.loads(response.content)

        # Only successful mutations are replayable
        if response.status_code == 200 and not payload.get("errors"):
            try:
                with transaction.atomic():
                    IdempotencyKey.objects.create(
                        key=idempotency_key,
                        user_id=user_uuid,
                        operation=operation,
                        request_hash=request_hash,
                        response_payload=payload,
                    )
            except IntegrityError as e:
                logger.warning(
                    "idempotency_key_race",
                    extra={"request_id": request_id, "idempotency_key": idempotency_key, "error": str(e)},
                )
        return response

    def _create_request_hash(self, query: str, variables: dict) -> str:
        """Create hash of request for deduplication."""
        content = json.dumps({"query": query, "variables": variables}, sort_keys=True)
        return hashlib.sha256(content.encode()).hexdigest()

    def _extract_operation(self, query: str) -> str:
        """Extract operation type from the mutation document."""
        for field_name, operation in MUTATION_OPERATIONS.items():
            if field_name in query:
                return operation
        return "UNKNOWN"

    def _execute(self, request, data: dict) -> JsonResponse:
        success, result = graphql_sync(
            schema,
            data,
            context_value={"request": request, "service": self.service},
            debug=settings.DEBUG,
            error_formatter=format_order_error,
        )
        status_code = 200 if success else 400
        return JsonResponse(result, status=status_code)


@csrf_exempt
@require_http_methods(["GET", "POST"])
def graphql_view(request):
    """GraphQL endpoint."""
    view = OrderEngineGraphQLView()
    return view.dispatch(request)
