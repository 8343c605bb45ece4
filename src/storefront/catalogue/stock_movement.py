"""StockMovement — append-only inventory ledger.

One entry per stock change, written in the same unit of work as the change
itself. Entries are never updated or deleted; together they explain every
value ``Product.stock`` has ever had.
"""

from datetime import UTC, datetime
from enum import Enum

from protean.fields import DateTime, Identifier, Integer, String
from protean.utils.globals import current_domain

from storefront.domain import storefront


class MovementAction(Enum):
    ORDER_PLACED = "Order_Placed"
    PAYMENT_FAILED = "Payment_Failed"
    PAYMENT_TIMEOUT = "Payment_Timeout"
    ORDER_CANCELLED = "Order_Cancelled"
    REFUND = "Refund"
    CAPTURE_REVERSED = "Capture_Reversed"


@storefront.aggregate
class StockMovement:
    product_id = Identifier(required=True)
    order_id = Identifier(required=True)
    payment_attempt_id = Identifier()
    quantity_changed = Integer(required=True)
    old_stock = Integer(required=True)
    new_stock = Integer(required=True)
    action = String(max_length=50, choices=MovementAction, required=True)
    reason = String(max_length=500)
    recorded_at = DateTime(required=True)


@storefront.repository(part_of=StockMovement)
class StockMovementRepository:
    def for_product(self, product_id: str) -> list[StockMovement]:
        movements = self._dao.query.filter(product_id=str(product_id)).all().items
        return sorted(movements, key=lambda m: m.recorded_at)

    def for_order(self, order_id: str) -> list[StockMovement]:
        movements = self._dao.query.filter(order_id=str(order_id)).all().items
        return sorted(movements, key=lambda m: m.recorded_at)


def record_stock_movement(
    product_id: str,
    order_id: str,
    old_stock: int,
    new_stock: int,
    action: MovementAction,
    payment_attempt_id: str | None = None,
    reason: str | None = None,
) -> StockMovement:
    movement = StockMovement(
        product_id=str(product_id),
        order_id=str(order_id),
        payment_attempt_id=str(payment_attempt_id) if payment_attempt_id else None,
        quantity_changed=new_stock - old_stock,
        old_stock=old_stock,
        new_stock=new_stock,
        action=action.value,
        reason=reason,
        recorded_at=datetime.now(UTC),
    )
    current_domain.repository_for(StockMovement).add(movement)
    return movement
