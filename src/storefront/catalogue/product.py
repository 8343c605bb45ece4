"""Product aggregate (CQRS) — the inventory record the engine writes to.

Catalogue management (descriptions, images, categories) is owned elsewhere.
Here a product carries only what checkout needs: a name and price to
snapshot, an active flag, and the ``stock`` counter.

Stock changes only through ``reserve`` (compare-and-decrement) and
``restock``; nothing assigns ``stock`` directly.
"""

from datetime import UTC, datetime

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, Integer, String

from storefront.domain import storefront
from storefront.errors import InsufficientStock


@storefront.aggregate
class Product:
    name = String(required=True, max_length=255)
    price = Float(required=True, min_value=0.0)
    currency = String(max_length=3, default="INR")
    stock = Integer(default=0)
    is_active = Boolean(default=True)
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def price_must_not_be_negative(self):
        if self.price is not None and self.price < 0:
            raise ValidationError({"price": ["Price cannot be negative"]})

    @classmethod
    def create(cls, name, price, stock=0, currency="INR", is_active=True):
        now = datetime.now(UTC)
        return cls(
            name=name,
            price=price,
            currency=currency,
            stock=stock,
            is_active=is_active,
            created_at=now,
            updated_at=now,
        )

    def is_available_for(self, quantity: int) -> bool:
        return bool(self.is_active) and (self.stock or 0) >= quantity

    def reserve(self, quantity: int) -> tuple[int, int]:
        """Decrement stock if sufficient. Returns (old_stock, new_stock)."""
        if quantity < 1:
            raise ValidationError({"quantity": ["Quantity must be at least 1"]})

        old_stock = self.stock or 0
        if old_stock < quantity:
            raise InsufficientStock(str(self.id), requested=quantity, available=old_stock)

        self.stock = old_stock - quantity
        self.updated_at = datetime.now(UTC)
        return old_stock, self.stock

    def restock(self, quantity: int) -> tuple[int, int]:
        """Return previously reserved units. Returns (old_stock, new_stock)."""
        if quantity < 1:
            raise ValidationError({"quantity": ["Quantity must be at least 1"]})

        old_stock = self.stock or 0
        self.stock = old_stock + quantity
        self.updated_at = datetime.now(UTC)
        return old_stock, self.stock
