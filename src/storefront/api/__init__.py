"""Storefront API package."""

from storefront.api.routes import cart_router, order_router, payment_router

__all__ = ["cart_router", "order_router", "payment_router"]
