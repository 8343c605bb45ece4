"""Payment gateway port (abstract interface).

Defines the contract every gateway adapter implements, so the engine can run
against FakeGateway (dev/test) or RazorpayGateway (production) unchanged.

Adapters raise ``GatewayUnavailable`` when the gateway cannot be reached or
rejects the call. Nothing here touches local state; callers invoke the
gateway outside any unit of work.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class PaymentIntentResult:
    """A gateway-side intent (Razorpay "order") the client pays against."""

    gateway_reference: str
    amount_minor: int
    currency: str
    gateway_status: str | None = None


@dataclass(frozen=True)
class RefundResult:
    """Result of a refund attempt."""

    success: bool
    gateway_refund_id: str | None = None
    gateway_status: str | None = None
    failure_reason: str | None = None


class PaymentGateway(ABC):
    """Abstract payment gateway interface."""

    key_id: str = ""

    @abstractmethod
    def create_payment_intent(
        self,
        amount_minor: int,
        currency: str,
        receipt: str,
    ) -> PaymentIntentResult:
        """Open an intent for ``amount_minor`` units of ``currency``."""
        ...

    @abstractmethod
    def create_refund(
        self,
        gateway_payment_id: str,
        amount_minor: int,
        reason: str,
    ) -> RefundResult:
        """Refund a captured payment in full."""
        ...

    @abstractmethod
    def verify_webhook_signature(
        self,
        payload: bytes,
        signature: str,
    ) -> bool:
        """Verify that a webhook payload is authentically from the gateway."""
        ...
