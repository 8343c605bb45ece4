"""Razorpay payment gateway adapter.

Talks to the Razorpay REST API with HTTP basic auth (key id / key secret):
- ``POST /orders`` opens the intent the checkout widget pays against
- ``POST /payments/{id}/refund`` refunds a captured payment

Webhooks are signed with a separate webhook secret as a hex HMAC-SHA256 of
the raw body, sent in the ``X-Razorpay-Signature`` header.
"""

import requests
import structlog

from storefront.errors import GatewayUnavailable
from storefront.payments.gateway.port import PaymentGateway, PaymentIntentResult, RefundResult
from storefront.payments.gateway.signature import verify_signature

logger = structlog.get_logger(__name__)


class RazorpayGateway(PaymentGateway):
    """Production Razorpay gateway adapter."""

    def __init__(
        self,
        key_id: str,
        key_secret: str,
        webhook_secret: str,
        base_url: str = "https://api.razorpay.com/v1",
        timeout: float = 10.0,
    ) -> None:
        self.key_id = key_id
        self.key_secret = key_secret
        self.webhook_secret = webhook_secret
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _post(self, operation: str, path: str, body: dict) -> dict:
        try:
            response = requests.post(
                f"{self.base_url}{path}",
                json=body,
                auth=(self.key_id, self.key_secret),
                timeout=self.timeout,
            )
            response.raise_for_status()
            return response.json()
        except requests.RequestException as exc:
            logger.warning("Gateway call failed", operation=operation, path=path, error=str(exc))
            raise GatewayUnavailable(operation, str(exc)) from exc
        except ValueError as exc:
            # Body was not JSON
            logger.warning("Gateway returned a non-JSON body", operation=operation, path=path, error=str(exc))
            raise GatewayUnavailable(operation, "invalid response body") from exc

    def create_payment_intent(self, amount_minor: int, currency: str, receipt: str) -> PaymentIntentResult:
        data = self._post(
            "create_payment_intent",
            "/orders",
            {"amount": amount_minor, "currency": currency, "receipt": receipt},
        )
        if not data.get("id"):
            raise GatewayUnavailable("create_payment_intent", "response carried no order id")
        return PaymentIntentResult(
            gateway_reference=data["id"],
            amount_minor=int(data.get("amount", amount_minor)),
            currency=data.get("currency", currency),
            gateway_status=data.get("status"),
        )

    def create_refund(self, gateway_payment_id: str, amount_minor: int, reason: str) -> RefundResult:
        try:
            data = self._post(
                "create_refund",
                f"/payments/{gateway_payment_id}/refund",
                {"amount": amount_minor, "notes": {"reason": reason}},
            )
        except GatewayUnavailable as exc:
            return RefundResult(success=False, gateway_status="failed", failure_reason=exc.message)

        if data.get("status") == "failed" or not data.get("id"):
            return RefundResult(
                success=False,
                gateway_status=data.get("status"),
                failure_reason=data.get("error_description") or "refund rejected",
            )
        return RefundResult(success=True, gateway_refund_id=data["id"], gateway_status=data.get("status"))

    def verify_webhook_signature(self, payload: bytes, signature: str) -> bool:
        return verify_signature(payload, signature, self.webhook_secret)
