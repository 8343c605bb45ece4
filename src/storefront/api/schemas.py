"""Pydantic request/response schemas for the Storefront API.

These are external contracts (anti-corruption layer) — separate from
internal Protean commands.
"""

from datetime import datetime

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Shared sub-models
# ---------------------------------------------------------------------------
class AddressSchema(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    phone: str | None = Field(default=None, max_length=20)
    street: str = Field(min_length=1, max_length=255)
    city: str = Field(min_length=1, max_length=100)
    state: str | None = Field(default=None, max_length=100)
    postal_code: str = Field(min_length=1, max_length=20)
    country: str = Field(default="India", max_length=100)


class OrderItemSchema(BaseModel):
    product_id: str
    name: str
    unit_price: float
    quantity: int


# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------
class AddToCartRequest(BaseModel):
    product_id: str
    quantity: int = Field(default=1, ge=1)


class PlaceOrderRequest(BaseModel):
    shipping_address: AddressSchema

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "shipping_address": {
                        "name": "Asha Rao",
                        "phone": "9876543210",
                        "street": "12 MG Road",
                        "city": "Bengaluru",
                        "state": "Karnataka",
                        "postal_code": "560001",
                        "country": "India",
                    }
                }
            ]
        }
    }


class CancelOrderRequest(BaseModel):
    reason: str = Field(default="Cancelled on request", min_length=1, max_length=500)


class InitiatePaymentRequest(BaseModel):
    order_id: str


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------
class CartResponse(BaseModel):
    cart_id: str


class OrderIdResponse(BaseModel):
    order_id: str


class OrderResponse(BaseModel):
    order_id: str
    customer_id: str
    status: str
    payment_status: str
    total_amount: float
    currency: str
    items: list[OrderItemSchema]
    gateway_reference: str | None = None
    cancellation_reason: str | None = None
    placed_at: datetime | None = None
    paid_at: datetime | None = None
    cancelled_at: datetime | None = None
    refunded_at: datetime | None = None


class PaymentIntentResponse(BaseModel):
    gateway_reference: str
    amount: int  # Minor units
    currency: str
    key_id: str


class RefundResponse(BaseModel):
    payment_attempt_id: str
    gateway_refund_id: str
    status: str = "refunded"


class StatusResponse(BaseModel):
    status: str = "ok"
