"""Tests for the PaymentAttempt aggregate."""

from datetime import UTC, datetime, timedelta

import pytest
from protean.exceptions import ValidationError
from storefront.payments.attempt import TIMEOUT_REASON, AttemptStatus, PaymentAttempt
from storefront.payments.events import PaymentAttemptCreated, PaymentCaptured, PaymentRefunded


def _attempt():
    return PaymentAttempt.create(
        order_id="ord-001",
        customer_id="cust-001",
        amount=20.0,
        amount_minor=2000,
        currency="INR",
        gateway_reference="order_ref_1",
    )


class TestPaymentAttemptCreation:
    def test_starts_pending_and_holds_pending_slot(self):
        attempt = _attempt()
        assert attempt.status == AttemptStatus.PENDING.value
        assert attempt.pending_order_id == "ord-001"
        assert attempt.is_pending is True

    def test_raises_created_event(self):
        assert any(isinstance(e, PaymentAttemptCreated) for e in _attempt()._events)


class TestPaymentAttemptTransitions:
    def test_success_clears_pending_slot(self):
        attempt = _attempt()
        attempt.record_success("pay_1")
        assert attempt.status == AttemptStatus.SUCCESS.value
        assert attempt.pending_order_id is None
        assert attempt.gateway_payment_id == "pay_1"
        assert attempt.paid_at is not None
        assert any(isinstance(e, PaymentCaptured) for e in attempt._events)

    def test_failure_records_reason(self):
        attempt = _attempt()
        attempt.record_failure(TIMEOUT_REASON)
        assert attempt.status == AttemptStatus.FAILED.value
        assert attempt.failure_reason == "timeout"
        assert attempt.pending_order_id is None

    def test_failed_attempt_cannot_succeed(self):
        attempt = _attempt()
        attempt.record_failure("declined")
        with pytest.raises(ValidationError):
            attempt.record_success("pay_1")

    def test_refund_only_after_success(self):
        attempt = _attempt()
        with pytest.raises(ValidationError):
            attempt.record_refund("rfnd_1")

    def test_refund_after_success(self):
        attempt = _attempt()
        attempt.record_success("pay_1")
        attempt.record_refund("rfnd_1")
        assert attempt.status == AttemptStatus.REFUNDED.value
        assert attempt.gateway_refund_id == "rfnd_1"
        assert any(isinstance(e, PaymentRefunded) for e in attempt._events)


class TestStuckDetection:
    def test_young_attempt_is_not_stuck(self):
        attempt = _attempt()
        assert attempt.is_stuck(datetime.now(UTC), timeout_minutes=30) is False

    def test_old_attempt_is_stuck(self):
        attempt = _attempt()
        assert attempt.is_stuck(datetime.now(UTC) + timedelta(minutes=31), timeout_minutes=30) is True

    def test_naive_reference_time_is_treated_as_utc(self):
        attempt = _attempt()
        later = (datetime.now(UTC) + timedelta(minutes=31)).replace(tzinfo=None)
        assert attempt.is_stuck(later, timeout_minutes=30) is True

    def test_terminal_attempt_is_never_stuck(self):
        attempt = _attempt()
        attempt.record_failure("declined")
        assert attempt.is_stuck(datetime.now(UTC) + timedelta(days=1), timeout_minutes=30) is False
