"""E-mail templates for order lifecycle messages.

Each template renders a subject and plain-text body from event context.
"""


class OrderConfirmationTemplate:
    @staticmethod
    def render(context: dict) -> dict:
        order_id = context.get("order_id", "N/A")
        return {
            "subject": f"Order #{order_id} Confirmed",
            "body": (
                f"Your payment was received and order #{order_id} is confirmed.\n\n"
                f"Order Total: {context.get('currency', 'INR')} {context.get('total_amount', '0.00')}\n\n"
                "We'll notify you once your order ships."
            ),
        }


class OrderCancellationTemplate:
    @staticmethod
    def render(context: dict) -> dict:
        order_id = context.get("order_id", "N/A")
        return {
            "subject": f"Order #{order_id} Cancelled",
            "body": (
                f"Your order #{order_id} has been cancelled.\n\n"
                f"Reason: {context.get('reason') or 'not specified'}\n\n"
                "If you were charged, the refund will follow separately."
            ),
        }


class RefundNotificationTemplate:
    @staticmethod
    def render(context: dict) -> dict:
        currency = context.get("currency", "INR")
        amount = context.get("total_amount", "0.00")
        return {
            "subject": f"Refund Processed - {currency} {amount}",
            "body": (
                f"A refund of {currency} {amount} has been processed "
                f"for order #{context.get('order_id', 'N/A')}.\n\n"
                "The refund should appear in your account within 5-10 "
                "business days, depending on your payment provider."
            ),
        }
