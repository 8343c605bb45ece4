"""Order aggregate (CQRS) — the financial record of a purchase.

Line items are a snapshot of product name and price taken when the order is
placed. ``total_amount`` is computed from that snapshot once and never
recomputed from live catalogue data.

State Machine:
    PLACED → PAYMENT_PENDING → CONFIRMED → RETURN_APPROVED → REFUNDED
    PLACED / PAYMENT_PENDING → CONFIRMED (late notification)
    PLACED / PAYMENT_PENDING / CONFIRMED → CANCELLED → REFUNDED

``payment_status`` is tracked separately because one order can see several
payment attempts. ``reservation_released`` records that the stock reserved
at placement has gone back to the ledger, so it is never returned twice.
"""

import json
from datetime import UTC, datetime
from enum import Enum

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import (
    Boolean,
    DateTime,
    Float,
    HasMany,
    Identifier,
    Integer,
    String,
    ValueObject,
)

from storefront.domain import storefront
from storefront.errors import OrderNotEligible
from storefront.ordering.events import (
    OrderAwaitingPayment,
    OrderCancelled,
    OrderConfirmed,
    OrderPlaced,
    OrderRefunded,
    ReturnApproved,
)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    PLACED = "Placed"
    PAYMENT_PENDING = "Payment_Pending"
    CONFIRMED = "Confirmed"
    RETURN_APPROVED = "Return_Approved"
    CANCELLED = "Cancelled"
    REFUNDED = "Refunded"


class PaymentStatus(Enum):
    PENDING = "Pending"
    PAID = "Paid"
    FAILED = "Failed"
    REFUNDED = "Refunded"


class CancellationActor(Enum):
    CUSTOMER = "Customer"
    ADMIN = "Admin"
    SYSTEM = "System"


_VALID_TRANSITIONS = {
    OrderStatus.PLACED: {OrderStatus.PAYMENT_PENDING, OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.PAYMENT_PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.RETURN_APPROVED, OrderStatus.CANCELLED},
    OrderStatus.RETURN_APPROVED: {OrderStatus.REFUNDED},
    OrderStatus.CANCELLED: {OrderStatus.REFUNDED},
    OrderStatus.REFUNDED: set(),  # Terminal
}

# Order states from which a captured payment may be refunded
REFUNDABLE_STATES = {OrderStatus.CANCELLED, OrderStatus.RETURN_APPROVED}

# States a customer may cancel from; admins may additionally cancel CONFIRMED
_CUSTOMER_CANCELLABLE_STATES = {OrderStatus.PLACED, OrderStatus.PAYMENT_PENDING}


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@storefront.value_object(part_of="Order")
class ShippingAddress:
    """Delivery destination captured at placement.

    Independent of the customer's address book; later edits there do not
    change where this order ships.
    """

    name = String(required=True, max_length=255)
    phone = String(max_length=20)
    street = String(required=True, max_length=255)
    city = String(required=True, max_length=100)
    state = String(max_length=100)
    postal_code = String(required=True, max_length=20)
    country = String(max_length=100, default="India")


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@storefront.entity(part_of="Order")
class OrderItem:
    product_id = Identifier(required=True)
    name = String(required=True, max_length=255)
    unit_price = Float(required=True, min_value=0.0)
    quantity = Integer(required=True, min_value=1)

    @property
    def subtotal(self) -> float:
        return self.unit_price * self.quantity


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
def _snapshot_total(items) -> float:
    return round(sum(item.unit_price * item.quantity for item in items), 2)


@storefront.aggregate
class Order:
    customer_id = Identifier(required=True)
    items = HasMany(OrderItem)
    total_amount = Float(required=True, min_value=0.0)
    currency = String(max_length=3, default="INR")
    status = String(choices=OrderStatus, default=OrderStatus.PLACED.value)
    payment_status = String(choices=PaymentStatus, default=PaymentStatus.PENDING.value)
    shipping_address = ValueObject(ShippingAddress)
    reservation_released = Boolean(default=False)
    gateway_reference = String(max_length=255)
    gateway_payment_id = String(max_length=255)
    cancellation_reason = String(max_length=500)
    cancelled_by = String(max_length=50)
    placed_at = DateTime()
    paid_at = DateTime()
    cancelled_at = DateTime()
    refunded_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def order_must_have_items(self):
        if not self.items:
            raise ValidationError({"items": ["Order must have at least one item"]})

    @invariant.post
    def total_must_match_line_snapshot(self):
        if abs((self.total_amount or 0.0) - _snapshot_total(self.items)) > 0.005:
            raise ValidationError({"total_amount": ["Total amount must equal the sum of line subtotals"]})

    @invariant.post
    def paid_order_must_hold_its_reservation(self):
        if self.payment_status == PaymentStatus.PAID.value and self.reservation_released:
            raise ValidationError({"reservation_released": ["A paid order must keep its stock reservation"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(cls, customer_id, lines, shipping_address, currency="INR"):
        """Create a placed order from snapshotted lines.

        Args:
            customer_id: The purchasing account.
            lines: List of dicts with product_id, name, unit_price, quantity.
            shipping_address: Dict with name, phone, street, city, state,
                postal_code, country.
            currency: ISO currency code the order is charged in.
        """
        now = datetime.now(UTC)
        items = [
            OrderItem(
                product_id=line["product_id"],
                name=line["name"],
                unit_price=line["unit_price"],
                quantity=line["quantity"],
            )
            for line in lines
        ]

        order = cls(
            customer_id=customer_id,
            items=items,
            total_amount=_snapshot_total(items),
            currency=currency,
            status=OrderStatus.PLACED.value,
            payment_status=PaymentStatus.PENDING.value,
            shipping_address=ShippingAddress(**shipping_address),
            reservation_released=False,
            placed_at=now,
            updated_at=now,
        )
        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                customer_id=str(customer_id),
                items=json.dumps(lines),
                total_amount=order.total_amount,
                currency=currency,
                placed_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @property
    def amount_minor(self) -> int:
        """Total in minor currency units (paise, cents)."""
        return int(round(self.total_amount * 100))

    @property
    def holds_reservation(self) -> bool:
        return not self.reservation_released

    def is_owned_by(self, customer_id) -> bool:
        return str(self.customer_id) == str(customer_id)

    def can_accept_payment(self) -> bool:
        return (
            self.payment_status != PaymentStatus.PAID.value
            and OrderStatus(self.status) in (OrderStatus.PLACED, OrderStatus.PAYMENT_PENDING)
        )

    # -------------------------------------------------------------------
    # State transition helper
    # -------------------------------------------------------------------
    def _assert_can_transition(self, target_status: OrderStatus) -> None:
        current = OrderStatus(self.status)
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise OrderNotEligible(
                str(self.id),
                f"Cannot transition from {current.value} to {target_status.value}",
            )

    # -------------------------------------------------------------------
    # Payment lifecycle
    # -------------------------------------------------------------------
    def await_payment(self, gateway_reference: str) -> None:
        """Record the gateway intent opened for this order."""
        if not self.can_accept_payment():
            raise OrderNotEligible(str(self.id), "Order cannot accept a payment")

        now = datetime.now(UTC)
        with atomic_change(self):
            if OrderStatus(self.status) == OrderStatus.PLACED:
                self.status = OrderStatus.PAYMENT_PENDING.value
            self.gateway_reference = gateway_reference
            self.updated_at = now

        self.raise_(OrderAwaitingPayment(order_id=str(self.id), gateway_reference=gateway_reference))

    def confirm_payment(self, gateway_payment_id: str) -> None:
        """Mark the order paid. Only valid while the reservation is held."""
        self._assert_can_transition(OrderStatus.CONFIRMED)
        if self.reservation_released:
            raise OrderNotEligible(str(self.id), "Order no longer holds its stock reservation")

        now = datetime.now(UTC)
        with atomic_change(self):
            self.status = OrderStatus.CONFIRMED.value
            self.payment_status = PaymentStatus.PAID.value
            self.gateway_payment_id = gateway_payment_id
            self.paid_at = now
            self.updated_at = now

        self.raise_(
            OrderConfirmed(
                order_id=str(self.id),
                customer_id=str(self.customer_id),
                total_amount=self.total_amount,
                currency=self.currency,
                gateway_payment_id=gateway_payment_id,
                paid_at=now,
            )
        )

    def cancel(self, reason: str, cancelled_by: str = CancellationActor.SYSTEM.value) -> None:
        """Cancel the order.

        Unpaid orders move to payment status FAILED. A paid order keeps
        PAID until its payment is refunded.
        """
        if cancelled_by == CancellationActor.CUSTOMER.value and OrderStatus(self.status) not in (
            _CUSTOMER_CANCELLABLE_STATES
        ):
            raise OrderNotEligible(str(self.id), "Order can no longer be cancelled by the customer")
        self._assert_can_transition(OrderStatus.CANCELLED)

        now = datetime.now(UTC)
        with atomic_change(self):
            self.status = OrderStatus.CANCELLED.value
            if self.payment_status != PaymentStatus.PAID.value:
                self.payment_status = PaymentStatus.FAILED.value
            self.cancellation_reason = reason
            self.cancelled_by = cancelled_by
            self.cancelled_at = now
            self.updated_at = now

        self.raise_(
            OrderCancelled(
                order_id=str(self.id),
                customer_id=str(self.customer_id),
                reason=reason,
                cancelled_by=cancelled_by,
                cancelled_at=now,
            )
        )

    def approve_return(self) -> None:
        self._assert_can_transition(OrderStatus.RETURN_APPROVED)

        now = datetime.now(UTC)
        self.status = OrderStatus.RETURN_APPROVED.value
        self.updated_at = now

        self.raise_(ReturnApproved(order_id=str(self.id), customer_id=str(self.customer_id), approved_at=now))

    def mark_refunded(self) -> None:
        self._assert_can_transition(OrderStatus.REFUNDED)

        now = datetime.now(UTC)
        with atomic_change(self):
            self.status = OrderStatus.REFUNDED.value
            self.payment_status = PaymentStatus.REFUNDED.value
            self.refunded_at = now
            self.updated_at = now

        self.raise_(
            OrderRefunded(
                order_id=str(self.id),
                customer_id=str(self.customer_id),
                total_amount=self.total_amount,
                currency=self.currency,
                refunded_at=now,
            )
        )

    def mark_reservation_released(self) -> None:
        self.reservation_released = True
        self.updated_at = datetime.now(UTC)


@storefront.repository(part_of=Order)
class OrderRepository:
    def for_customer(self, customer_id: str) -> list[Order]:
        orders = self._dao.query.filter(customer_id=str(customer_id)).all().items
        return sorted(orders, key=lambda o: o.placed_at, reverse=True)
