"""Order placement — command and handler.

Turns the customer's cart into an order in a single unit of work: every
line is validated against the catalogue first, then stock is reserved,
prices are snapshotted and the cart is cleared. Any rejection leaves stock,
orders and the cart untouched.
"""

import json

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import Identifier, Text
from protean.utils.globals import current_domain

from storefront.catalogue.product import Product
from storefront.catalogue.stock_movement import MovementAction, record_stock_movement
from storefront.config import get_settings
from storefront.domain import storefront
from storefront.errors import CurrencyMismatch, EmptyCart, InsufficientStock, ProductUnavailable
from storefront.ordering.cart import Cart
from storefront.ordering.order import Order

logger = structlog.get_logger(__name__)


@storefront.command(part_of="Order")
class PlaceOrder:
    customer_id = Identifier(required=True)
    shipping_address = Text(required=True)  # JSON: address dict


@storefront.command_handler(part_of=Order)
class PlaceOrderHandler:
    @handle(PlaceOrder)
    def place_order(self, command):
        shipping_address = (
            json.loads(command.shipping_address)
            if isinstance(command.shipping_address, str)
            else command.shipping_address
        )

        cart_repo = current_domain.repository_for(Cart)
        cart = cart_repo.find_for_customer(command.customer_id)
        if cart is None or cart.is_empty:
            raise EmptyCart(str(command.customer_id))

        product_repo = current_domain.repository_for(Product)
        currency = get_settings().currency

        # Validate every line before touching any stock
        checked = []
        for line in cart.lines:
            try:
                product = product_repo.get(str(line.product_id))
            except ObjectNotFoundError:
                raise ProductUnavailable(str(line.product_id)) from None
            if not product.is_active:
                raise ProductUnavailable(str(product.id))
            if (product.currency or "").upper() != currency.upper():
                raise CurrencyMismatch(str(product.id), expected=currency, actual=product.currency)
            if (product.stock or 0) < line.quantity:
                raise InsufficientStock(str(product.id), requested=line.quantity, available=product.stock or 0)
            checked.append((product, line.quantity))

        lines = [
            {
                "product_id": str(product.id),
                "name": product.name,
                "unit_price": product.price,
                "quantity": quantity,
            }
            for product, quantity in checked
        ]
        order = Order.create(
            customer_id=command.customer_id,
            lines=lines,
            shipping_address=shipping_address,
            currency=currency,
        )

        for product, quantity in checked:
            old_stock, new_stock = product.reserve(quantity)
            product_repo.add(product)
            record_stock_movement(
                product_id=str(product.id),
                order_id=str(order.id),
                old_stock=old_stock,
                new_stock=new_stock,
                action=MovementAction.ORDER_PLACED,
            )

        current_domain.repository_for(Order).add(order)

        cart.clear()
        cart_repo.add(cart)

        logger.info(
            "Order placed",
            order_id=str(order.id),
            customer_id=str(command.customer_id),
            total_amount=order.total_amount,
            lines=len(lines),
        )
        return str(order.id)
