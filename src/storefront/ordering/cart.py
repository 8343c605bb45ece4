"""Shopping Cart aggregate (CQRS) — one cart per account.

The cart only records what the customer intends to buy. Prices and
availability are read from the catalogue at checkout, never from the cart.
"""

from datetime import UTC, datetime

from protean.exceptions import ValidationError
from protean.fields import DateTime, HasMany, Identifier, Integer

from storefront.domain import storefront


@storefront.entity(part_of="Cart")
class CartLine:
    product_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)
    added_at = DateTime()


@storefront.aggregate
class Cart:
    customer_id = Identifier(required=True, unique=True)
    lines = HasMany(CartLine)
    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def create(cls, customer_id):
        now = datetime.now(UTC)
        return cls(customer_id=customer_id, created_at=now, updated_at=now)

    @property
    def is_empty(self) -> bool:
        return not self.lines

    def add_item(self, product_id, quantity):
        """Add a product (or increase its quantity if already present)."""
        if quantity < 1:
            raise ValidationError({"quantity": ["Quantity must be at least 1"]})

        now = datetime.now(UTC)
        existing = next((line for line in self.lines if str(line.product_id) == str(product_id)), None)
        if existing:
            existing.quantity += quantity
        else:
            self.add_lines(CartLine(product_id=product_id, quantity=quantity, added_at=now))
        self.updated_at = now

    def clear(self):
        """Remove every line. Clearing an empty cart changes nothing."""
        if self.is_empty:
            return
        for line in list(self.lines):
            self.remove_lines(line)
        self.updated_at = datetime.now(UTC)


@storefront.repository(part_of=Cart)
class CartRepository:
    def find_for_customer(self, customer_id: str) -> Cart | None:
        carts = self._dao.query.filter(customer_id=str(customer_id)).all().items
        return carts[0] if carts else None
