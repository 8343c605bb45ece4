"""Order cancellation and return approval — commands and handler."""

import structlog
from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from storefront.catalogue.stock_movement import MovementAction
from storefront.domain import storefront
from storefront.ordering.order import Order, PaymentStatus
from storefront.ordering.reservation import release_reservation

logger = structlog.get_logger(__name__)


@storefront.command(part_of="Order")
class CancelOrder:
    order_id = Identifier(required=True)
    reason = String(required=True, max_length=500)
    cancelled_by = String(required=True, max_length=50)  # Customer or Admin


@storefront.command(part_of="Order")
class ApproveReturn:
    order_id = Identifier(required=True)


@storefront.command_handler(part_of=Order)
class CancellationHandler:
    @handle(CancelOrder)
    def cancel_order(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.cancel(reason=command.reason, cancelled_by=command.cancelled_by)

        # A paid order keeps its units until the payment is refunded
        if order.payment_status != PaymentStatus.PAID.value:
            release_reservation(order, MovementAction.ORDER_CANCELLED, reason=command.reason)

        repo.add(order)
        logger.info(
            "Order cancelled",
            order_id=str(order.id),
            cancelled_by=command.cancelled_by,
            payment_status=order.payment_status,
        )

    @handle(ApproveReturn)
    def approve_return(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.approve_return()
        repo.add(order)
        logger.info("Return approved", order_id=str(order.id))
