"""Payment reconciliation — applies gateway webhook notifications.

Notifications may arrive more than once, out of order, or not at all. The
attempt's status is the idempotency key: once an attempt is terminal every
further notification for it is a duplicate and changes nothing.

Order of checks in ``handle_notification``:
1. Signature, before the body is parsed or any state is read
2. Payload shape and event type
3. Attempt lookup by gateway reference
4. Duplicate delivery
5. Failure, amount/currency integrity, oversell guard, confirmation
"""

from enum import Enum

import structlog
from protean import handle
from protean.fields import Identifier, Integer, String
from protean.utils.globals import current_domain

from storefront.catalogue.product import Product
from storefront.catalogue.stock_movement import MovementAction
from storefront.domain import storefront
from storefront.errors import AmountMismatch, InvalidSignature, StorefrontError
from storefront.ordering.cart import Cart
from storefront.ordering.order import CancellationActor, Order, OrderStatus, PaymentStatus
from storefront.ordering.reservation import release_reservation
from storefront.payments.attempt import AMOUNT_MISMATCH_REASON, PaymentAttempt
from storefront.payments.gateway import get_gateway
from storefront.payments.notification import NotificationKind, parse_notification
from storefront.payments.refund import refund_payment

logger = structlog.get_logger(__name__)


class NotificationOutcome(Enum):
    PROCESSED_SUCCESS = "Processed_Success"
    PROCESSED_FAILURE = "Processed_Failure"
    DUPLICATE = "Duplicate"
    UNKNOWN = "Unknown"
    IGNORED = "Ignored"
    AMOUNT_MISMATCH = "Amount_Mismatch"
    REVERSED = "Reversed"


@storefront.command(part_of="PaymentAttempt")
class ApplyGatewayNotification:
    gateway_reference = String(required=True, max_length=255)
    kind = String(required=True, choices=NotificationKind)
    gateway_payment_id = String(required=True, max_length=255)
    amount_minor = Integer(required=True)
    currency = String(required=True, max_length=3)
    failure_reason = String(max_length=500)


def _close_unpaid_order(order: Order, reason: str, action: MovementAction, payment_attempt_id: str) -> None:
    """Cancel an order whose payment did not go through and return its stock."""
    if order.payment_status == PaymentStatus.PAID.value:
        # Settled by another attempt; this attempt's outcome does not affect it
        return
    if order.status in (OrderStatus.PLACED.value, OrderStatus.PAYMENT_PENDING.value):
        order.cancel(reason=reason, cancelled_by=CancellationActor.SYSTEM.value)
    release_reservation(order, action, payment_attempt_id=payment_attempt_id, reason=reason)


def _oversell_reason(order: Order) -> str | None:
    """Why a capture cannot confirm ``order``, if it cannot."""
    if order.payment_status == PaymentStatus.PAID.value:
        return "order already paid"
    if order.status == OrderStatus.CANCELLED.value:
        return "order already cancelled"
    if order.reservation_released:
        return "stock reservation already released"
    if order.status not in (OrderStatus.PLACED.value, OrderStatus.PAYMENT_PENDING.value):
        return f"order is {order.status}"

    product_repo = current_domain.repository_for(Product)
    for item in order.items:
        if (product_repo.get(str(item.product_id)).stock or 0) < 0:
            return f"negative stock for product {item.product_id}"
    return None


@storefront.command_handler(part_of=PaymentAttempt)
class ReconciliationHandler:
    @handle(ApplyGatewayNotification)
    def apply_notification(self, command):
        attempt_repo = current_domain.repository_for(PaymentAttempt)
        attempt = attempt_repo.find_by_gateway_reference(command.gateway_reference)
        if attempt is None:
            logger.warning("Notification for unknown payment attempt", gateway_reference=command.gateway_reference)
            return NotificationOutcome.UNKNOWN.value

        if attempt.is_terminal:
            logger.info(
                "Duplicate notification ignored",
                payment_attempt_id=str(attempt.id),
                status=attempt.status,
                kind=command.kind,
            )
            return NotificationOutcome.DUPLICATE.value

        order_repo = current_domain.repository_for(Order)
        order = order_repo.get(attempt.order_id)
        attempt_id = str(attempt.id)

        if command.kind == NotificationKind.FAILED.value:
            reason = command.failure_reason or "payment_failed"
            attempt.record_failure(reason)
            _close_unpaid_order(order, f"Payment failed: {reason}", MovementAction.PAYMENT_FAILED, attempt_id)
            attempt_repo.add(attempt)
            order_repo.add(order)
            logger.info("Payment failed", payment_attempt_id=attempt_id, order_id=str(order.id), reason=reason)
            return NotificationOutcome.PROCESSED_FAILURE.value

        if command.amount_minor != attempt.amount_minor or command.currency.upper() != attempt.currency.upper():
            mismatch = AmountMismatch(
                attempt_id,
                expected=f"{attempt.amount_minor} {attempt.currency}",
                received=f"{command.amount_minor} {command.currency}",
            )
            logger.critical(mismatch.message, order_id=str(order.id), **mismatch.context)
            attempt.record_failure(AMOUNT_MISMATCH_REASON)
            _close_unpaid_order(order, "Payment amount mismatch", MovementAction.PAYMENT_FAILED, attempt_id)
            attempt_repo.add(attempt)
            order_repo.add(order)
            return NotificationOutcome.AMOUNT_MISMATCH.value

        reversal = _oversell_reason(order)
        attempt.record_success(command.gateway_payment_id)

        if reversal:
            logger.error(
                "Reversing capture that cannot confirm its order",
                payment_attempt_id=attempt_id,
                order_id=str(order.id),
                reason=reversal,
            )
            _close_unpaid_order(order, f"Capture reversed: {reversal}", MovementAction.CAPTURE_REVERSED, attempt_id)
            attempt_repo.add(attempt)
            order_repo.add(order)
            return NotificationOutcome.REVERSED.value

        order.confirm_payment(command.gateway_payment_id)
        attempt_repo.add(attempt)
        order_repo.add(order)

        cart_repo = current_domain.repository_for(Cart)
        cart = cart_repo.find_for_customer(str(order.customer_id))
        if cart is not None and not cart.is_empty:
            cart.clear()
            cart_repo.add(cart)

        logger.info(
            "Payment captured and order confirmed",
            payment_attempt_id=attempt_id,
            order_id=str(order.id),
            gateway_payment_id=command.gateway_payment_id,
        )
        return NotificationOutcome.PROCESSED_SUCCESS.value


def handle_notification(raw_payload: bytes, signature: str | None) -> NotificationOutcome:
    """Verify and apply one gateway webhook delivery.

    Raises:
        InvalidSignature: The signature does not match the raw payload.
            Nothing has been read or written.
    """
    if not get_gateway().verify_webhook_signature(raw_payload, signature or ""):
        logger.critical("Webhook signature verification failed")
        raise InvalidSignature()

    notification = parse_notification(raw_payload)
    if notification is None:
        return NotificationOutcome.IGNORED

    payment = notification.payment
    outcome = NotificationOutcome(
        current_domain.process(
            ApplyGatewayNotification(
                gateway_reference=payment.order_id,
                kind=notification.kind.value,
                gateway_payment_id=payment.id,
                amount_minor=payment.amount,
                currency=payment.currency,
                failure_reason=notification.failure_reason,
            ),
            asynchronous=False,
        )
    )

    if outcome is NotificationOutcome.REVERSED:
        attempt = current_domain.repository_for(PaymentAttempt).find_by_gateway_reference(payment.order_id)
        try:
            refund_payment(str(attempt.id))
        except StorefrontError as exc:
            logger.error(
                "Refund of reversed capture failed; retry via the admin refund endpoint",
                payment_attempt_id=str(attempt.id),
                error=exc.message,
            )

    return outcome
