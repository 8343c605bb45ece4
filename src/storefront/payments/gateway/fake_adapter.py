"""Configurable fake payment gateway for development and testing.

Simulates the gateway without any external calls. It can be configured at
runtime to fail, which makes it useful for:
- Automated tests with predictable outcomes
- Development without real gateway credentials

Webhook signatures are real HMAC-SHA256 digests over the configured secret,
so tests sign payloads exactly the way the gateway would.
"""

from uuid import uuid4

from storefront.errors import GatewayUnavailable
from storefront.payments.gateway.port import PaymentGateway, PaymentIntentResult, RefundResult
from storefront.payments.gateway.signature import verify_signature


class FakeGateway(PaymentGateway):
    """Configurable fake payment gateway."""

    def __init__(self, webhook_secret: str, key_id: str = "rzp_test_key") -> None:
        self.webhook_secret = webhook_secret
        self.key_id = key_id
        self.should_succeed: bool = True
        self.failure_reason: str = "Gateway unreachable"
        self.calls: list[dict] = []

    def configure(self, should_succeed: bool, failure_reason: str = "Gateway unreachable") -> None:
        """Configure gateway behavior at runtime."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def create_payment_intent(self, amount_minor: int, currency: str, receipt: str) -> PaymentIntentResult:
        self.calls.append(
            {
                "method": "create_payment_intent",
                "amount_minor": amount_minor,
                "currency": currency,
                "receipt": receipt,
            }
        )

        if not self.should_succeed:
            raise GatewayUnavailable("create_payment_intent", self.failure_reason)
        return PaymentIntentResult(
            gateway_reference=f"order_fake_{uuid4().hex[:14]}",
            amount_minor=amount_minor,
            currency=currency,
            gateway_status="created",
        )

    def create_refund(self, gateway_payment_id: str, amount_minor: int, reason: str) -> RefundResult:
        self.calls.append(
            {
                "method": "create_refund",
                "gateway_payment_id": gateway_payment_id,
                "amount_minor": amount_minor,
                "reason": reason,
            }
        )

        if self.should_succeed:
            return RefundResult(
                success=True,
                gateway_refund_id=f"rfnd_fake_{uuid4().hex[:14]}",
                gateway_status="processed",
            )
        return RefundResult(success=False, gateway_status="failed", failure_reason=self.failure_reason)

    def verify_webhook_signature(self, payload: bytes, signature: str) -> bool:
        return verify_signature(payload, signature, self.webhook_secret)
