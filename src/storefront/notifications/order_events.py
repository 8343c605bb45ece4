"""Order e-mails — reacts to Order lifecycle events.

Sending is fire-and-forget: a missing address or a failed delivery is
logged and never reaches the unit of work that raised the event.
"""

import structlog
from protean import handle

from storefront.accounts import get_directory
from storefront.domain import storefront
from storefront.notifications.channel import get_email_channel
from storefront.notifications.templates import (
    OrderCancellationTemplate,
    OrderConfirmationTemplate,
    RefundNotificationTemplate,
)
from storefront.ordering.events import OrderCancelled, OrderConfirmed, OrderRefunded
from storefront.ordering.order import Order

logger = structlog.get_logger(__name__)


def send_customer_email(customer_id: str, template, context: dict) -> bool:
    """Render ``template`` and send it to the customer. Returns whether it was sent."""
    email = get_directory().email_for(customer_id)
    if not email:
        logger.info("No e-mail address on file, skipping notification", customer_id=customer_id)
        return False

    rendered = template.render(context)
    try:
        result = get_email_channel().send(to=email, subject=rendered["subject"], body=rendered["body"])
    except Exception as exc:
        logger.error("E-mail dispatch raised", customer_id=customer_id, error=str(exc))
        return False

    if result.get("status") != "sent":
        logger.warning("E-mail dispatch failed", customer_id=customer_id, error=result.get("error"))
        return False
    return True


@storefront.event_handler(part_of=Order)
class OrderEmailHandler:
    """Sends customer e-mails for confirmed, cancelled and refunded orders."""

    @handle(OrderConfirmed)
    def on_order_confirmed(self, event: OrderConfirmed) -> None:
        send_customer_email(
            str(event.customer_id),
            OrderConfirmationTemplate,
            {
                "order_id": str(event.order_id),
                "total_amount": f"{event.total_amount:.2f}",
                "currency": event.currency,
            },
        )

    @handle(OrderCancelled)
    def on_order_cancelled(self, event: OrderCancelled) -> None:
        send_customer_email(
            str(event.customer_id),
            OrderCancellationTemplate,
            {"order_id": str(event.order_id), "reason": event.reason},
        )

    @handle(OrderRefunded)
    def on_order_refunded(self, event: OrderRefunded) -> None:
        send_customer_email(
            str(event.customer_id),
            RefundNotificationTemplate,
            {
                "order_id": str(event.order_id),
                "total_amount": f"{event.total_amount:.2f}",
                "currency": event.currency,
            },
        )
