"""
Domain error taxonomy for the order lifecycle.
"""


class OrderError(Exception):
    """Base class for order domain errors."""

    code = "ORDER_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class InvalidTransition(OrderError):
    """Requested status change is not permitted from the current state."""

    code = "INVALID_TRANSITION"

    def __init__(self, current, target, reason: str = ""):
        self.current = current
        self.target = target
        current_value = getattr(current, "value", current)
        target_value = getattr(target, "value", target)
        message = f"Cannot move order from {current_value} to {target_value}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class PaymentCorrelationError(OrderError):
    """Gateway identifiers do not match the order (possible replay or forgery)."""

    code = "PAYMENT_CORRELATION"


class InvalidCoupon(OrderError):
    code = "INVALID_COUPON"


class VersionConflict(OrderError):
    """Order was modified concurrently since it was read."""

    code = "VERSION_CONFLICT"


class OrderNotFound(OrderError):
    code = "NOT_FOUND"


class InvariantViolation(OrderError):
    """Internal consistency rule broken (negative money, corrupt state)."""

    code = "INVARIANT_VIOLATION"


class DuplicateIdentifier(OrderError):
    """Identifier that must be globally unique is already taken."""

    code = "DUPLICATE_IDENTIFIER"


class InvalidOrderOperation(OrderError):
    """Operation precondition not met or input rejected."""

    code = "INVALID_OPERATION"
