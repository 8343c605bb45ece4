"""Cart item management — command and handler."""

from protean import handle
from protean.fields import Identifier, Integer
from protean.utils.globals import current_domain

from storefront.domain import storefront
from storefront.ordering.cart import Cart


@storefront.command(part_of="Cart")
class AddToCart:
    customer_id = Identifier(required=True)
    product_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)


@storefront.command_handler(part_of=Cart)
class CartItemsHandler:
    @handle(AddToCart)
    def add_to_cart(self, command):
        repo = current_domain.repository_for(Cart)
        cart = repo.find_for_customer(command.customer_id)
        if cart is None:
            cart = Cart.create(customer_id=command.customer_id)

        cart.add_item(product_id=command.product_id, quantity=command.quantity)
        repo.add(cart)
        return str(cart.id)
