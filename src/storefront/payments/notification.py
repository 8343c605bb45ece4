"""Gateway webhook payload parsing.

Razorpay wraps the payment entity as ``payload.payment.entity``; only the
fields the engine reconciles on are modelled. Anything that does not parse
is treated as irrelevant and acknowledged without a state change.
"""

import json
from enum import Enum

import structlog
from pydantic import BaseModel, Field, ValidationError

logger = structlog.get_logger(__name__)


class NotificationKind(Enum):
    CAPTURED = "payment.captured"
    FAILED = "payment.failed"


class PaymentEntity(BaseModel):
    id: str = Field(..., description="Gateway payment id (pay_xxx)")
    order_id: str = Field(..., description="Gateway reference of the payment attempt")
    amount: int = Field(..., ge=0, description="Amount in minor units")
    currency: str = Field(..., min_length=3, max_length=3)
    status: str | None = None
    error_code: str | None = None
    error_description: str | None = None


class PaymentWrapper(BaseModel):
    entity: PaymentEntity


class NotificationPayload(BaseModel):
    payment: PaymentWrapper


class GatewayNotification(BaseModel):
    event: str
    payload: NotificationPayload

    @property
    def kind(self) -> NotificationKind | None:
        try:
            return NotificationKind(self.event)
        except ValueError:
            return None

    @property
    def payment(self) -> PaymentEntity:
        return self.payload.payment.entity

    @property
    def failure_reason(self) -> str:
        return self.payment.error_description or self.payment.error_code or "payment_failed"


def parse_notification(raw_payload: bytes | str) -> GatewayNotification | None:
    """Parse a raw webhook body. Returns None for malformed or irrelevant events."""
    try:
        data = json.loads(raw_payload)
    except (TypeError, ValueError):
        logger.warning("Webhook body is not JSON")
        return None

    if not isinstance(data, dict) or data.get("event") not in {kind.value for kind in NotificationKind}:
        logger.info("Webhook event ignored", gateway_event=data.get("event") if isinstance(data, dict) else None)
        return None

    try:
        return GatewayNotification.model_validate(data)
    except ValidationError as exc:
        logger.warning("Webhook payload failed validation", gateway_event=data.get("event"), errors=exc.error_count())
        return None
