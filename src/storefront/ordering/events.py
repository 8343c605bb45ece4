"""Domain events for the Order aggregate."""

from protean.fields import DateTime, Float, Identifier, String, Text

from storefront.domain import storefront


@storefront.event(part_of="Order")
class OrderPlaced:
    """An order was created from the customer's cart and its stock reserved."""

    __version__ = 1

    order_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    items = Text(required=True)  # JSON: list of line snapshots
    total_amount = Float(required=True)
    currency = String(required=True)
    placed_at = DateTime(required=True)


@storefront.event(part_of="Order")
class OrderAwaitingPayment:
    """A payment attempt was opened at the gateway for the order."""

    __version__ = 1

    order_id = Identifier(required=True)
    gateway_reference = String(required=True)


@storefront.event(part_of="Order")
class OrderConfirmed:
    """Payment was captured and the order confirmed."""

    __version__ = 1

    order_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    total_amount = Float(required=True)
    currency = String(required=True)
    gateway_payment_id = String(required=True)
    paid_at = DateTime(required=True)


@storefront.event(part_of="Order")
class OrderCancelled:
    __version__ = 1

    order_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    reason = String(required=True)
    cancelled_by = String(required=True)
    cancelled_at = DateTime(required=True)


@storefront.event(part_of="Order")
class ReturnApproved:
    __version__ = 1

    order_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    approved_at = DateTime(required=True)


@storefront.event(part_of="Order")
class OrderRefunded:
    __version__ = 1

    order_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    total_amount = Float(required=True)
    currency = String(required=True)
    refunded_at = DateTime(required=True)
