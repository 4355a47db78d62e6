"""Error taxonomy for the orders domain.

Every failure the orchestrator can surface is an ``OrderError`` subclass
carrying a stable machine-readable ``ErrorCode`` and the HTTP status the API
layer renders it with. The API exception handler in ``gateway.exceptions``
turns these into ``{error, message, timestamp, trace_id}`` bodies.
"""

from enum import Enum


class ErrorCode(str, Enum):
    ORDER_NOT_FOUND = "ORDER_NOT_FOUND"
    MEMBER_NOT_FOUND = "MEMBER_NOT_FOUND"
    MEMBER_INACTIVE = "MEMBER_INACTIVE"
    PRODUCT_NOT_FOUND = "PRODUCT_NOT_FOUND"
    PRODUCT_UNAVAILABLE = "PRODUCT_UNAVAILABLE"
    INSUFFICIENT_STOCK = "INSUFFICIENT_STOCK"
    INVALID_ORDER_STATUS = "INVALID_ORDER_STATUS"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    CONCURRENT_MODIFICATION = "CONCURRENT_MODIFICATION"
    IDEMPOTENCY_CONFLICT = "IDEMPOTENCY_CONFLICT"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    INTERNAL_ERROR = "INTERNAL_ERROR"


HTTP_STATUS = {
    ErrorCode.ORDER_NOT_FOUND: 404,
    ErrorCode.MEMBER_NOT_FOUND: 404,
    ErrorCode.MEMBER_INACTIVE: 400,
    ErrorCode.PRODUCT_NOT_FOUND: 404,
    ErrorCode.PRODUCT_UNAVAILABLE: 400,
    ErrorCode.INSUFFICIENT_STOCK: 400,
    ErrorCode.INVALID_ORDER_STATUS: 400,
    ErrorCode.PAYMENT_FAILED: 422,
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.CONCURRENT_MODIFICATION: 409,
    ErrorCode.IDEMPOTENCY_CONFLICT: 409,
    ErrorCode.SERVICE_UNAVAILABLE: 503,
    ErrorCode.INTERNAL_ERROR: 500,
}


class OrderError(Exception):
    """Base class for all order faults.

    Attributes:
        code: Stable ``ErrorCode`` exposed to API clients.
        cacheable: Whether the idempotency cache may store and replay this
            fault. Domain rejections are final for a given request and are
            replayed; transient faults are not, so a retry runs again.
    """

    code = ErrorCode.INTERNAL_ERROR
    cacheable = True

    def __init__(self, message: str | None = None):
        self.message = message or self.code.value
        super().__init__(self.message)

    @property
    def http_status(self) -> int:
        return HTTP_STATUS[self.code]


class OrderNotFound(OrderError):
    code = ErrorCode.ORDER_NOT_FOUND


class MemberNotFound(OrderError):
    code = ErrorCode.MEMBER_NOT_FOUND


class MemberInactive(OrderError):
    code = ErrorCode.MEMBER_INACTIVE


class ProductNotFound(OrderError):
    code = ErrorCode.PRODUCT_NOT_FOUND


class ProductUnavailable(OrderError):
    code = ErrorCode.PRODUCT_UNAVAILABLE


class InsufficientStock(OrderError):
    code = ErrorCode.INSUFFICIENT_STOCK


class InvalidOrderStatus(OrderError):
    code = ErrorCode.INVALID_ORDER_STATUS


class PaymentFailed(OrderError):
    code = ErrorCode.PAYMENT_FAILED


class OrderValidationError(OrderError):
    """Malformed input. ``field_errors`` maps a dotted field path to a message."""

    code = ErrorCode.VALIDATION_ERROR

    def __init__(self, message: str | None = None, field_errors: dict[str, str] | None = None):
        super().__init__(message or "Validation failed")
        self.field_errors = field_errors or {}


class IdempotencyConflict(OrderError):
    code = ErrorCode.IDEMPOTENCY_CONFLICT


class ConcurrentModification(OrderError):
    code = ErrorCode.CONCURRENT_MODIFICATION
    cacheable = False


class ServiceUnavailable(OrderError):
    code = ErrorCode.SERVICE_UNAVAILABLE
    cacheable = False


class InternalError(OrderError):
    code = ErrorCode.INTERNAL_ERROR
    cacheable = False
