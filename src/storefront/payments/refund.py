"""Payment refund — command, handler and service.

The gateway refund is requested first, outside any unit of work. Only when
the gateway accepts it does ``CompleteRefund`` record the outcome, release
the order's reservation if it is still held and move attempt and order to
Refunded. A failed gateway call leaves everything as it was, so the refund
can simply be retried.

A capture that does not settle its order (a reversed capture on an unpaid
order, or a second capture on an order another attempt already paid) is
refunded on its own: only the attempt changes.
"""

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from storefront.catalogue.stock_movement import MovementAction
from storefront.domain import storefront
from storefront.errors import GatewayUnavailable, PaymentAttemptNotFound, RefundNotAllowed
from storefront.ordering.order import REFUNDABLE_STATES, Order, OrderStatus, PaymentStatus
from storefront.ordering.reservation import release_reservation
from storefront.payments.attempt import AttemptStatus, PaymentAttempt
from storefront.payments.gateway import get_gateway

logger = structlog.get_logger(__name__)


def settles_order(attempt: PaymentAttempt, order: Order) -> bool:
    """Whether refunding ``attempt`` also refunds ``order``."""
    return (
        order.payment_status == PaymentStatus.PAID.value
        and order.gateway_payment_id == attempt.gateway_payment_id
    )


def assert_refundable(attempt: PaymentAttempt, order: Order) -> None:
    if attempt.status != AttemptStatus.SUCCESS.value:
        raise RefundNotAllowed(str(attempt.id), f"payment attempt is {attempt.status}")
    if settles_order(attempt, order) and OrderStatus(order.status) not in REFUNDABLE_STATES:
        raise RefundNotAllowed(str(attempt.id), f"order is {order.status}")


@storefront.command(part_of="PaymentAttempt")
class CompleteRefund:
    payment_attempt_id = Identifier(required=True)
    gateway_refund_id = String(required=True, max_length=255)


@storefront.command_handler(part_of=PaymentAttempt)
class RefundHandler:
    @handle(CompleteRefund)
    def complete_refund(self, command):
        attempt_repo = current_domain.repository_for(PaymentAttempt)
        order_repo = current_domain.repository_for(Order)
        attempt = attempt_repo.get(command.payment_attempt_id)
        order = order_repo.get(attempt.order_id)

        assert_refundable(attempt, order)

        if settles_order(attempt, order):
            order.mark_refunded()
            release_reservation(
                order,
                MovementAction.REFUND,
                payment_attempt_id=str(attempt.id),
                reason="refund",
            )
            order_repo.add(order)

        attempt.record_refund(command.gateway_refund_id)
        attempt_repo.add(attempt)


def refund_payment(payment_attempt_id: str) -> str:
    """Refund a captured payment in full. Returns the gateway refund id.

    Raises:
        PaymentAttemptNotFound: No such attempt.
        RefundNotAllowed: The attempt is not captured or the order is not in
            a refundable state. Nothing is changed.
        GatewayUnavailable: The gateway refused or could not be reached.
            Nothing is changed.
    """
    attempt_repo = current_domain.repository_for(PaymentAttempt)
    try:
        attempt = attempt_repo.get(payment_attempt_id)
    except ObjectNotFoundError:
        raise PaymentAttemptNotFound(str(payment_attempt_id)) from None

    order = current_domain.repository_for(Order).get(attempt.order_id)
    assert_refundable(attempt, order)

    result = get_gateway().create_refund(
        gateway_payment_id=attempt.gateway_payment_id,
        amount_minor=attempt.amount_minor,
        reason=order.cancellation_reason or "refund",
    )
    if not result.success:
        logger.error(
            "Gateway refund failed",
            payment_attempt_id=str(attempt.id),
            order_id=str(order.id),
            reason=result.failure_reason,
        )
        raise GatewayUnavailable("create_refund", result.failure_reason or "refund failed")

    current_domain.process(
        CompleteRefund(
            payment_attempt_id=str(attempt.id),
            gateway_refund_id=result.gateway_refund_id,
        ),
        asynchronous=False,
    )
    logger.info(
        "Payment refunded",
        payment_attempt_id=str(attempt.id),
        order_id=str(order.id),
        gateway_refund_id=result.gateway_refund_id,
    )
    return result.gateway_refund_id
