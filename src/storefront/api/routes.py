"""FastAPI endpoints for the Storefront — cart, orders and payments."""

import json

import structlog
from fastapi import APIRouter, Depends, Header, Request
from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from storefront.accounts import is_admin
from storefront.api.dependencies import admin_account, current_account
from storefront.api.schemas import (
    AddToCartRequest,
    CancelOrderRequest,
    CartResponse,
    InitiatePaymentRequest,
    OrderIdResponse,
    OrderItemSchema,
    OrderResponse,
    PaymentIntentResponse,
    PlaceOrderRequest,
    RefundResponse,
    StatusResponse,
)
from storefront.errors import InvalidSignature, NotOrderOwner, OrderNotFound
from storefront.ordering.cancellation import ApproveReturn, CancelOrder
from storefront.ordering.cart_items import AddToCart
from storefront.ordering.order import CancellationActor, Order
from storefront.ordering.placement import PlaceOrder
from storefront.payments.initiation import initiate_payment
from storefront.payments.reconciliation import handle_notification
from storefront.payments.refund import refund_payment

logger = structlog.get_logger(__name__)


def _order_view(order: Order) -> OrderResponse:
    return OrderResponse(
        order_id=str(order.id),
        customer_id=str(order.customer_id),
        status=order.status,
        payment_status=order.payment_status,
        total_amount=order.total_amount,
        currency=order.currency,
        items=[
            OrderItemSchema(
                product_id=str(item.product_id),
                name=item.name,
                unit_price=item.unit_price,
                quantity=item.quantity,
            )
            for item in order.items
        ],
        gateway_reference=order.gateway_reference,
        cancellation_reason=order.cancellation_reason,
        placed_at=order.placed_at,
        paid_at=order.paid_at,
        cancelled_at=order.cancelled_at,
        refunded_at=order.refunded_at,
    )


def _load_visible_order(order_id: str, account_id: str) -> Order:
    """Load an order the caller owns, or any order for an admin."""
    try:
        order = current_domain.repository_for(Order).get(order_id)
    except ObjectNotFoundError:
        raise OrderNotFound(order_id) from None
    if not order.is_owned_by(account_id) and not is_admin(account_id):
        raise NotOrderOwner(order_id)
    return order


# ---------------------------------------------------------------------------
# Cart Router
# ---------------------------------------------------------------------------
cart_router = APIRouter(prefix="/cart", tags=["cart"])


@cart_router.post("/items", status_code=201, response_model=CartResponse)
async def add_to_cart(body: AddToCartRequest, account_id: str = Depends(current_account)) -> CartResponse:
    command = AddToCart(customer_id=account_id, product_id=body.product_id, quantity=body.quantity)
    result = current_domain.process(command, asynchronous=False)
    return CartResponse(cart_id=result)


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.post("", status_code=201, response_model=OrderIdResponse)
async def place_order(body: PlaceOrderRequest, account_id: str = Depends(current_account)) -> OrderIdResponse:
    command = PlaceOrder(
        customer_id=account_id,
        shipping_address=json.dumps(body.shipping_address.model_dump()),
    )
    result = current_domain.process(command, asynchronous=False)
    return OrderIdResponse(order_id=result)


@order_router.get("", response_model=list[OrderResponse])
async def list_my_orders(account_id: str = Depends(current_account)) -> list[OrderResponse]:
    orders = current_domain.repository_for(Order).for_customer(account_id)
    return [_order_view(order) for order in orders]


@order_router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: str, account_id: str = Depends(current_account)) -> OrderResponse:
    return _order_view(_load_visible_order(order_id, account_id))


@order_router.post("/{order_id}/cancel", response_model=StatusResponse)
async def cancel_order(
    order_id: str,
    body: CancelOrderRequest,
    account_id: str = Depends(current_account),
) -> StatusResponse:
    order = _load_visible_order(order_id, account_id)
    actor = CancellationActor.ADMIN if is_admin(account_id) else CancellationActor.CUSTOMER
    command = CancelOrder(order_id=str(order.id), reason=body.reason, cancelled_by=actor.value)
    current_domain.process(command, asynchronous=False)
    return StatusResponse(status="cancelled")


@order_router.post("/{order_id}/approve-return", response_model=StatusResponse)
async def approve_return(order_id: str, account_id: str = Depends(admin_account)) -> StatusResponse:
    _load_visible_order(order_id, account_id)
    current_domain.process(ApproveReturn(order_id=order_id), asynchronous=False)
    return StatusResponse(status="return_approved")


# ---------------------------------------------------------------------------
# Payment Router
# ---------------------------------------------------------------------------
payment_router = APIRouter(prefix="/payments", tags=["payments"])


@payment_router.post("/initiate", response_model=PaymentIntentResponse)
async def start_payment(
    body: InitiatePaymentRequest,
    account_id: str = Depends(current_account),
) -> PaymentIntentResponse:
    intent = initiate_payment(order_id=body.order_id, customer_id=account_id)
    return PaymentIntentResponse(
        gateway_reference=intent.gateway_reference,
        amount=intent.amount,
        currency=intent.currency,
        key_id=intent.key_id,
    )


@payment_router.post("/webhook", response_model=StatusResponse)
async def payment_webhook(request: Request, x_razorpay_signature: str = Header(default="")) -> StatusResponse:
    """Receive a gateway notification.

    Always acknowledged with 200 so the gateway does not retry deliveries the
    engine has already judged; the outcome is only logged.
    """
    raw_payload = await request.body()
    try:
        outcome = handle_notification(raw_payload, x_razorpay_signature)
        logger.info("Webhook processed", outcome=outcome.value)
    except InvalidSignature:
        logger.warning("Webhook rejected: invalid signature")
    except Exception:
        logger.exception("Webhook processing failed")
    return StatusResponse(status="acknowledged")


@payment_router.post("/{payment_attempt_id}/refund", response_model=RefundResponse)
async def refund(payment_attempt_id: str, account_id: str = Depends(admin_account)) -> RefundResponse:  # noqa: ARG001
    gateway_refund_id = refund_payment(payment_attempt_id)
    return RefundResponse(payment_attempt_id=payment_attempt_id, gateway_refund_id=gateway_refund_id)
