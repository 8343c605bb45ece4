"""Stock reservation release.

Every path that gives reserved stock back (payment failure, timeout,
cancellation, refund, reversed capture) goes through ``release_reservation``
so the units are returned exactly once per order.
"""

from collections import Counter

import structlog
from protean.utils.globals import current_domain

from storefront.catalogue.product import Product
from storefront.catalogue.stock_movement import MovementAction, record_stock_movement
from storefront.ordering.order import Order

logger = structlog.get_logger(__name__)


def release_reservation(
    order: Order,
    action: MovementAction,
    payment_attempt_id: str | None = None,
    reason: str | None = None,
) -> bool:
    """Restock every line of ``order`` and mark the reservation released.

    Must run inside the caller's unit of work. The order itself is not
    persisted here. Returns False when the reservation was already released.
    """
    if order.reservation_released:
        return False

    quantities = Counter()
    for item in order.items:
        quantities[str(item.product_id)] += item.quantity

    product_repo = current_domain.repository_for(Product)
    for product_id, quantity in quantities.items():
        product = product_repo.get(product_id)
        old_stock, new_stock = product.restock(quantity)
        product_repo.add(product)
        record_stock_movement(
            product_id=product_id,
            order_id=str(order.id),
            old_stock=old_stock,
            new_stock=new_stock,
            action=action,
            payment_attempt_id=payment_attempt_id,
            reason=reason,
        )

    order.mark_reservation_released()
    logger.info(
        "Reservation released",
        order_id=str(order.id),
        action=action.value,
        products=len(quantities),
    )
    return True
