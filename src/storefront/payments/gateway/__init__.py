"""Payment gateway factory.

Provides get_gateway() / set_gateway() to swap implementations:
- FakeGateway for development and testing
- RazorpayGateway for production (``STOREFRONT_GATEWAY=razorpay``)
"""

from storefront.config import get_settings
from storefront.payments.gateway.fake_adapter import FakeGateway
from storefront.payments.gateway.port import PaymentGateway
from storefront.payments.gateway.razorpay_adapter import RazorpayGateway

_current_gateway: PaymentGateway | None = None


def _build_gateway() -> PaymentGateway:
    settings = get_settings()
    if settings.gateway == "razorpay":
        return RazorpayGateway(
            key_id=settings.gateway_key_id,
            key_secret=settings.gateway_key_secret,
            webhook_secret=settings.webhook_secret,
            base_url=settings.gateway_base_url,
            timeout=settings.gateway_timeout_seconds,
        )
    return FakeGateway(webhook_secret=settings.webhook_secret, key_id=settings.gateway_key_id)


def get_gateway() -> PaymentGateway:
    """Return the current payment gateway, built from settings on first use."""
    global _current_gateway
    if _current_gateway is None:
        _current_gateway = _build_gateway()
    return _current_gateway


def set_gateway(gateway: PaymentGateway) -> None:
    """Override the active payment gateway (useful for tests)."""
    global _current_gateway
    _current_gateway = gateway


def reset_gateway() -> None:
    """Reset to the settings-configured gateway."""
    global _current_gateway
    _current_gateway = None
