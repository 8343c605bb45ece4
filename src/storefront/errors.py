"""Error taxonomy for the consistency engine.

Every business rejection carries an ``ErrorKind`` so callers can tell a
retryable conflict from an integrity failure without inspecting messages.
"""

from enum import Enum


class ErrorKind(Enum):
    VALIDATION = "Validation"
    CONFLICT = "Conflict"
    INTEGRITY = "Integrity"
    TRANSIENT = "Transient"
    NOT_FOUND = "Not_Found"
    FORBIDDEN = "Forbidden"


_RETRYABLE_KINDS = {ErrorKind.CONFLICT, ErrorKind.TRANSIENT}


class StorefrontError(Exception):
    """Base class for all engine errors."""

    kind = ErrorKind.VALIDATION

    def __init__(self, message: str, **context) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    @property
    def retryable(self) -> bool:
        return self.kind in _RETRYABLE_KINDS

    def to_dict(self) -> dict:
        return {
            "error": type(self).__name__,
            "kind": self.kind.value,
            "message": self.message,
            "retryable": self.retryable,
            **{key: str(value) for key, value in self.context.items()},
        }


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------
class EmptyCart(StorefrontError):
    kind = ErrorKind.VALIDATION

    def __init__(self, customer_id: str) -> None:
        super().__init__("Cart is empty", customer_id=customer_id)


class CurrencyMismatch(StorefrontError):
    kind = ErrorKind.VALIDATION

    def __init__(self, product_id: str, expected: str, actual: str) -> None:
        super().__init__(
            f"Product {product_id} is priced in {actual}, orders are in {expected}",
            product_id=product_id,
            expected=expected,
            actual=actual,
        )
        self.product_id = product_id


# ---------------------------------------------------------------------------
# Conflicts
# ---------------------------------------------------------------------------
class ProductUnavailable(StorefrontError):
    kind = ErrorKind.CONFLICT

    def __init__(self, product_id: str) -> None:
        super().__init__(f"Product unavailable: {product_id}", product_id=product_id)
        self.product_id = product_id


class InsufficientStock(StorefrontError):
    kind = ErrorKind.CONFLICT

    def __init__(self, product_id: str, requested: int, available: int) -> None:
        super().__init__(
            f"Insufficient stock for {product_id}",
            product_id=product_id,
            requested=requested,
            available=available,
        )
        self.product_id = product_id


class OrderNotEligible(StorefrontError):
    kind = ErrorKind.CONFLICT

    def __init__(self, order_id: str, reason: str) -> None:
        super().__init__(reason, order_id=order_id)


class RefundNotAllowed(StorefrontError):
    kind = ErrorKind.CONFLICT

    def __init__(self, payment_attempt_id: str, reason: str) -> None:
        super().__init__(f"Refund not allowed: {reason}", payment_attempt_id=payment_attempt_id)


# ---------------------------------------------------------------------------
# Integrity
# ---------------------------------------------------------------------------
class InvalidSignature(StorefrontError):
    kind = ErrorKind.INTEGRITY

    def __init__(self) -> None:
        super().__init__("Invalid webhook signature")


class AmountMismatch(StorefrontError):
    kind = ErrorKind.INTEGRITY

    def __init__(self, payment_attempt_id: str, expected: str, received: str) -> None:
        super().__init__(
            "Notified amount does not match the payment attempt",
            payment_attempt_id=payment_attempt_id,
            expected=expected,
            received=received,
        )


# ---------------------------------------------------------------------------
# Transient
# ---------------------------------------------------------------------------
class GatewayUnavailable(StorefrontError):
    kind = ErrorKind.TRANSIENT

    def __init__(self, operation: str, reason: str) -> None:
        super().__init__(f"Payment gateway {operation} failed: {reason}", operation=operation)


# ---------------------------------------------------------------------------
# Lookup / access
# ---------------------------------------------------------------------------
class OrderNotFound(StorefrontError):
    kind = ErrorKind.NOT_FOUND

    def __init__(self, order_id: str) -> None:
        super().__init__("Order not found", order_id=order_id)


class PaymentAttemptNotFound(StorefrontError):
    kind = ErrorKind.NOT_FOUND

    def __init__(self, payment_attempt_id: str) -> None:
        super().__init__("Payment attempt not found", payment_attempt_id=payment_attempt_id)


class NotOrderOwner(StorefrontError):
    kind = ErrorKind.FORBIDDEN

    def __init__(self, order_id: str) -> None:
        super().__init__("Not authorized for this order", order_id=order_id)


class AdminRequired(StorefrontError):
    kind = ErrorKind.FORBIDDEN

    def __init__(self) -> None:
        super().__init__("Admin role required")
