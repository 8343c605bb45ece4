"""Domain events for the PaymentAttempt aggregate."""

from protean.fields import DateTime, Float, Identifier, String

from storefront.domain import storefront


@storefront.event(part_of="PaymentAttempt")
class PaymentAttemptCreated:
    """A gateway intent was opened for an order."""

    __version__ = 1

    payment_attempt_id = Identifier(required=True)
    order_id = Identifier(required=True)
    amount = Float(required=True)
    currency = String(required=True)
    gateway_reference = String(required=True)
    created_at = DateTime(required=True)


@storefront.event(part_of="PaymentAttempt")
class PaymentCaptured:
    """The gateway reported the payment as captured."""

    __version__ = 1

    payment_attempt_id = Identifier(required=True)
    order_id = Identifier(required=True)
    gateway_payment_id = String(required=True)
    paid_at = DateTime(required=True)


@storefront.event(part_of="PaymentAttempt")
class PaymentAttemptFailed:
    __version__ = 1

    payment_attempt_id = Identifier(required=True)
    order_id = Identifier(required=True)
    reason = String(required=True)
    failed_at = DateTime(required=True)


@storefront.event(part_of="PaymentAttempt")
class PaymentRefunded:
    __version__ = 1

    payment_attempt_id = Identifier(required=True)
    order_id = Identifier(required=True)
    amount = Float(required=True)
    gateway_refund_id = String(required=True)
    refunded_at = DateTime(required=True)
