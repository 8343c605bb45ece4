"""Application tests for order cancellation and return approval."""

import pytest
from protean import current_domain
from storefront.catalogue.product import Product
from storefront.catalogue.stock_movement import MovementAction, StockMovement
from storefront.errors import OrderNotEligible
from storefront.ordering.cancellation import ApproveReturn, CancelOrder
from storefront.ordering.order import Order, OrderStatus, PaymentStatus
from storefront.payments.initiation import initiate_payment


@pytest.fixture()
def product(make_product):
    return make_product(price=10.0, stock=5)


def _cancel(order_id, cancelled_by="Customer", reason="changed my mind"):
    current_domain.process(
        CancelOrder(order_id=order_id, reason=reason, cancelled_by=cancelled_by),
        asynchronous=False,
    )


def _stock(product):
    return current_domain.repository_for(Product).get(str(product.id)).stock


def _pay(order_id, deliver):
    reference = initiate_payment(order_id, "cust-001").gateway_reference
    deliver(reference, 2000)


class TestCustomerCancellation:
    def test_cancel_placed_order_restores_stock(self, product, place_order):
        order_id = place_order("cust-001", [(product, 2)])
        _cancel(order_id)

        order = current_domain.repository_for(Order).get(order_id)
        assert order.status == OrderStatus.CANCELLED.value
        assert order.payment_status == PaymentStatus.FAILED.value
        assert order.cancellation_reason == "changed my mind"
        assert order.reservation_released is True
        assert _stock(product) == 5

        movements = current_domain.repository_for(StockMovement).for_order(order_id)
        assert [m.action for m in movements].count(MovementAction.ORDER_CANCELLED.value) == 1

    def test_cancel_awaiting_payment(self, product, place_order):
        order_id = place_order("cust-001", [(product, 2)])
        initiate_payment(order_id, "cust-001")
        _cancel(order_id)
        assert _stock(product) == 5

    def test_customer_cannot_cancel_paid_order(self, product, place_order, deliver):
        order_id = place_order("cust-001", [(product, 2)])
        _pay(order_id, deliver)

        with pytest.raises(OrderNotEligible):
            _cancel(order_id)
        assert current_domain.repository_for(Order).get(order_id).status == OrderStatus.CONFIRMED.value

    def test_cancelled_order_cannot_be_cancelled_again(self, product, place_order):
        order_id = place_order("cust-001", [(product, 2)])
        _cancel(order_id)
        with pytest.raises(OrderNotEligible):
            _cancel(order_id, cancelled_by="Admin")
        assert _stock(product) == 5


class TestAdminCancellation:
    def test_admin_cancel_of_paid_order_keeps_reservation(self, product, place_order, deliver):
        order_id = place_order("cust-001", [(product, 2)])
        _pay(order_id, deliver)

        _cancel(order_id, cancelled_by="Admin", reason="Out of stock at warehouse")

        order = current_domain.repository_for(Order).get(order_id)
        assert order.status == OrderStatus.CANCELLED.value
        assert order.payment_status == PaymentStatus.PAID.value
        assert order.reservation_released is False
        assert _stock(product) == 3


class TestReturnApproval:
    def test_approve_return_of_confirmed_order(self, product, place_order, deliver):
        order_id = place_order("cust-001", [(product, 2)])
        _pay(order_id, deliver)

        current_domain.process(ApproveReturn(order_id=order_id), asynchronous=False)

        order = current_domain.repository_for(Order).get(order_id)
        assert order.status == OrderStatus.RETURN_APPROVED.value
        assert order.payment_status == PaymentStatus.PAID.value

    def test_unpaid_order_cannot_be_returned(self, product, place_order):
        order_id = place_order("cust-001", [(product, 2)])
        with pytest.raises(OrderNotEligible):
            current_domain.process(ApproveReturn(order_id=order_id), asynchronous=False)
