"""Storefront bounded context — Order / Payment / Inventory consistency.

Products (stock ledger), carts, orders and payment attempts live in one
domain so that a single unit of work can reserve stock, create an order and
record payment outcomes together.
"""

from protean.domain import Domain

# Domain Composition Root
storefront = Domain(name="storefront")
