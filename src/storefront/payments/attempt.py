"""PaymentAttempt aggregate (CQRS) — one try at paying for an order.

An order may see several attempts over its life, but never more than one
``PENDING`` at a time. ``pending_order_id`` mirrors ``order_id`` while the
attempt is pending and is cleared on any terminal transition; the field is
unique, so storage refuses a second pending attempt for the same order.

State Machine:
    PENDING → SUCCESS → REFUNDED
    PENDING → FAILED
"""

from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, Identifier, Integer, String

from storefront.domain import storefront
from storefront.payments.events import (
    PaymentAttemptCreated,
    PaymentAttemptFailed,
    PaymentCaptured,
    PaymentRefunded,
)


class AttemptStatus(Enum):
    PENDING = "Pending"
    SUCCESS = "Success"
    FAILED = "Failed"
    REFUNDED = "Refunded"


_VALID_TRANSITIONS = {
    AttemptStatus.PENDING: {AttemptStatus.SUCCESS, AttemptStatus.FAILED},
    AttemptStatus.SUCCESS: {AttemptStatus.REFUNDED},
    AttemptStatus.FAILED: set(),  # Terminal
    AttemptStatus.REFUNDED: set(),  # Terminal
}

TIMEOUT_REASON = "timeout"
AMOUNT_MISMATCH_REASON = "amount_mismatch"


def _ensure_aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=UTC)


@storefront.aggregate
class PaymentAttempt:
    order_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    pending_order_id = Identifier(unique=True)
    amount = Float(required=True, min_value=0.0)
    amount_minor = Integer(required=True, min_value=0)
    currency = String(max_length=3, default="INR")
    status = String(choices=AttemptStatus, default=AttemptStatus.PENDING.value)
    gateway_reference = String(max_length=255, unique=True, required=True)
    gateway_payment_id = String(max_length=255, unique=True)
    gateway_refund_id = String(max_length=255)
    failure_reason = String(max_length=500)
    created_at = DateTime()
    paid_at = DateTime()
    failed_at = DateTime()
    refunded_at = DateTime()

    @classmethod
    def create(cls, order_id, customer_id, amount, amount_minor, currency, gateway_reference):
        now = datetime.now(UTC)
        attempt = cls(
            order_id=order_id,
            customer_id=customer_id,
            pending_order_id=order_id,
            amount=amount,
            amount_minor=amount_minor,
            currency=currency,
            status=AttemptStatus.PENDING.value,
            gateway_reference=gateway_reference,
            created_at=now,
        )
        attempt.raise_(
            PaymentAttemptCreated(
                payment_attempt_id=str(attempt.id),
                order_id=str(order_id),
                amount=amount,
                currency=currency,
                gateway_reference=gateway_reference,
                created_at=now,
            )
        )
        return attempt

    @property
    def is_pending(self) -> bool:
        return self.status == AttemptStatus.PENDING.value

    @property
    def is_terminal(self) -> bool:
        return not self.is_pending

    def is_stuck(self, as_of: datetime, timeout_minutes: int) -> bool:
        if not self.is_pending or self.created_at is None:
            return False
        age = _ensure_aware(as_of) - _ensure_aware(self.created_at)
        return age.total_seconds() > timeout_minutes * 60

    def _assert_can_transition(self, target_status: AttemptStatus) -> None:
        current = AttemptStatus(self.status)
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise ValidationError(
                {"status": [f"Cannot transition from {current.value} to {target_status.value}"]}
            )

    def record_success(self, gateway_payment_id: str) -> None:
        self._assert_can_transition(AttemptStatus.SUCCESS)

        now = datetime.now(UTC)
        self.status = AttemptStatus.SUCCESS.value
        self.pending_order_id = None
        self.gateway_payment_id = gateway_payment_id
        self.paid_at = now

        self.raise_(
            PaymentCaptured(
                payment_attempt_id=str(self.id),
                order_id=str(self.order_id),
                gateway_payment_id=gateway_payment_id,
                paid_at=now,
            )
        )

    def record_failure(self, reason: str) -> None:
        self._assert_can_transition(AttemptStatus.FAILED)

        now = datetime.now(UTC)
        self.status = AttemptStatus.FAILED.value
        self.pending_order_id = None
        self.failure_reason = reason
        self.failed_at = now

        self.raise_(
            PaymentAttemptFailed(
                payment_attempt_id=str(self.id),
                order_id=str(self.order_id),
                reason=reason,
                failed_at=now,
            )
        )

    def record_refund(self, gateway_refund_id: str) -> None:
        self._assert_can_transition(AttemptStatus.REFUNDED)

        now = datetime.now(UTC)
        self.status = AttemptStatus.REFUNDED.value
        self.gateway_refund_id = gateway_refund_id
        self.refunded_at = now

        self.raise_(
            PaymentRefunded(
                payment_attempt_id=str(self.id),
                order_id=str(self.order_id),
                amount=self.amount,
                gateway_refund_id=gateway_refund_id,
                refunded_at=now,
            )
        )


@storefront.repository(part_of=PaymentAttempt)
class PaymentAttemptRepository:
    def add(self, attempt: PaymentAttempt) -> PaymentAttempt:
        """Persist an attempt, refusing a second pending attempt per order."""
        if attempt.is_pending:
            existing = self.find_pending_for_order(str(attempt.order_id))
            if existing is not None and str(existing.id) != str(attempt.id):
                raise ValidationError(
                    {"pending_order_id": [f"Order {attempt.order_id} already has a pending payment attempt"]}
                )
        return super().add(attempt)

    def find_pending_for_order(self, order_id: str) -> PaymentAttempt | None:
        attempts = self._dao.query.filter(pending_order_id=str(order_id)).all().items
        return attempts[0] if attempts else None

    def find_by_gateway_reference(self, gateway_reference: str) -> PaymentAttempt | None:
        attempts = self._dao.query.filter(gateway_reference=gateway_reference).all().items
        return attempts[0] if attempts else None

    def find_for_order(self, order_id: str) -> list[PaymentAttempt]:
        attempts = self._dao.query.filter(order_id=str(order_id)).all().items
        return sorted(attempts, key=lambda a: _ensure_aware(a.created_at))

    def find_pending(self) -> list[PaymentAttempt]:
        attempts = self._dao.query.filter(status=AttemptStatus.PENDING.value).all().items
        return sorted(attempts, key=lambda a: _ensure_aware(a.created_at))
