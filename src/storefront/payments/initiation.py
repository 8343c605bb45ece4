"""Payment initiation — command, handler and service.

``initiate_payment`` is idempotent per order: while a pending attempt
exists its gateway reference is returned unchanged. A new gateway intent is
opened outside any unit of work, then ``RecordPaymentAttempt`` stores the
attempt and moves the order to Payment_Pending in one unit of work.
"""

from dataclasses import dataclass

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from storefront.domain import storefront
from storefront.errors import NotOrderOwner, OrderNotEligible, OrderNotFound
from storefront.ordering.order import Order, OrderStatus, PaymentStatus
from storefront.payments.attempt import PaymentAttempt
from storefront.payments.gateway import get_gateway

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class PaymentIntent:
    """What the client needs to open the gateway checkout."""

    gateway_reference: str
    amount: int  # Minor units
    currency: str
    key_id: str


def _assert_payable(order: Order, customer_id: str) -> None:
    if not order.is_owned_by(customer_id):
        raise NotOrderOwner(str(order.id))
    if order.payment_status == PaymentStatus.PAID.value:
        raise OrderNotEligible(str(order.id), "Order is already paid")
    if not order.can_accept_payment():
        raise OrderNotEligible(str(order.id), f"Order is {order.status}")


def _load_order(order_id: str) -> Order:
    try:
        return current_domain.repository_for(Order).get(order_id)
    except ObjectNotFoundError:
        raise OrderNotFound(str(order_id)) from None


def _intent_for(attempt: PaymentAttempt) -> PaymentIntent:
    return PaymentIntent(
        gateway_reference=attempt.gateway_reference,
        amount=attempt.amount_minor,
        currency=attempt.currency,
        key_id=get_gateway().key_id,
    )


@storefront.command(part_of="PaymentAttempt")
class RecordPaymentAttempt:
    order_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    gateway_reference = String(required=True, max_length=255)


@storefront.command_handler(part_of=PaymentAttempt)
class PaymentInitiationHandler:
    @handle(RecordPaymentAttempt)
    def record_payment_attempt(self, command):
        order_repo = current_domain.repository_for(Order)
        order = order_repo.get(command.order_id)

        # Re-check inside the unit of work; the order may have moved on
        _assert_payable(order, command.customer_id)

        attempt = PaymentAttempt.create(
            order_id=str(order.id),
            customer_id=str(order.customer_id),
            amount=order.total_amount,
            amount_minor=order.amount_minor,
            currency=order.currency,
            gateway_reference=command.gateway_reference,
        )
        current_domain.repository_for(PaymentAttempt).add(attempt)

        order.await_payment(command.gateway_reference)
        order_repo.add(order)
        return str(attempt.id)


def initiate_payment(order_id: str, customer_id: str) -> PaymentIntent:
    """Return the payment intent for an order, creating one if needed.

    Raises:
        OrderNotFound: No such order.
        NotOrderOwner: The order belongs to another account.
        OrderNotEligible: The order is paid or no longer accepts payment.
        GatewayUnavailable: The gateway could not open an intent. Nothing is
            persisted in that case.
    """
    order = _load_order(order_id)
    _assert_payable(order, customer_id)

    attempt_repo = current_domain.repository_for(PaymentAttempt)
    pending = attempt_repo.find_pending_for_order(str(order.id))
    if pending is not None:
        logger.info(
            "Returning existing pending payment attempt",
            order_id=str(order.id),
            payment_attempt_id=str(pending.id),
        )
        return _intent_for(pending)

    gateway = get_gateway()
    result = gateway.create_payment_intent(
        amount_minor=order.amount_minor,
        currency=order.currency,
        receipt=str(order.id),
    )

    try:
        current_domain.process(
            RecordPaymentAttempt(
                order_id=str(order.id),
                customer_id=str(customer_id),
                gateway_reference=result.gateway_reference,
            ),
            asynchronous=False,
        )
    except ValidationError:
        # A concurrent initiation stored its attempt first
        winner = attempt_repo.find_pending_for_order(str(order.id))
        if winner is None:
            raise
        logger.warning(
            "Abandoned duplicate gateway intent",
            order_id=str(order.id),
            abandoned_reference=result.gateway_reference,
            gateway_reference=winner.gateway_reference,
        )
        return _intent_for(winner)

    logger.info(
        "Payment attempt created",
        order_id=str(order.id),
        gateway_reference=result.gateway_reference,
        amount_minor=order.amount_minor,
    )
    return PaymentIntent(
        gateway_reference=result.gateway_reference,
        amount=order.amount_minor,
        currency=order.currency,
        key_id=gateway.key_id,
    )
