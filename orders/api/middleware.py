"""
Request validation and error handling for the JSON endpoints.
"""
import logging

from django.http import JsonResponse

from orders.domain.errors import OrderError, PaymentCorrelationError

logger = logging.getLogger(__name__)


class ValidationError(Exception):
    """Malformed request payload."""
    def __init__(self, message: str, code: str = "VALIDATION_ERROR"):
        self.message = message
        self.code = code
        super().__init__(self.message)


class ErrorHandler:
    """Error handler for API responses."""

    ERROR_CODES = {
        "VALIDATION_ERROR": 400,
        "INVALID_OPERATION": 400,
        "INVALID_COUPON": 400,
        "PAYMENT_CORRELATION": 400,
        "NOT_FOUND": 404,
        "INVALID_TRANSITION": 409,
        "VERSION_CONFLICT": 409,
        "DUPLICATE_IDENTIFIER": 409,
        "DUPLICATE_REQUEST": 409,
        "INVARIANT_VIOLATION": 500,
        "INTERNAL_ERROR": 500,
    }

    @classmethod
    def status_for(cls, code: str) -> int:
        return cls.ERROR_CODES.get(code, 400)

    @classmethod
    def error_response(cls, code: str, message: str) -> JsonResponse:
        return JsonResponse(
            {"error": {"code": code, "message": message}},
            status=cls.status_for(code),
        )

    @classmethod
    def handle_error(cls, error: Exception) -> JsonResponse:
        """Handle error and return JSON response."""
        if isinstance(error, (ValidationError, OrderError)):
            level = logging.WARNING if isinstance(error, PaymentCorrelationError) else logging.INFO
            logger.log(level, "request_rejected", extra={"error": error.code, "status": cls.status_for(error.code)})
            return cls.error_response(error.code, error.message)

        # Log unexpected errors
        logger.error(
            "unexpected_error",
            extra={
                "error_type": type(error).__name__,
                "error": str(error),
            },
            exc_info=True,
        )

        return cls.error_response("INTERNAL_ERROR", "An internal error occurred")
