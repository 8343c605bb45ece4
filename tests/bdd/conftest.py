"""Shared BDD fixtures and step definitions for checkout."""

import pytest
from protean import current_domain
from pytest_bdd import given, parsers, then, when
from storefront.catalogue.product import Product
from storefront.ordering.cart import Cart
from storefront.ordering.order import Order
from storefront.payments.attempt import PaymentAttempt
from storefront.payments.initiation import initiate_payment


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------
@pytest.fixture()
def checkout():
    """Mutable state shared between the steps of one scenario."""
    return {"products": {}, "customer_id": None, "order_id": None, "reference": None, "outcome": None}


def _order(checkout):
    return current_domain.repository_for(Order).get(checkout["order_id"])


def _attempt(checkout):
    return current_domain.repository_for(PaymentAttempt).find_by_gateway_reference(checkout["reference"])


def _place(checkout, place_order):
    checkout["order_id"] = place_order(checkout["customer_id"], [])


def _initiate(checkout):
    intent = initiate_payment(checkout["order_id"], checkout["customer_id"])
    checkout["reference"] = intent.gateway_reference


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.parse('a product "{name}" priced {price:f} with {stock:d} in stock'))
def product_in_stock(checkout, make_product, name, price, stock):
    checkout["products"][name] = make_product(name=name, price=price, stock=stock)


@given(parsers.parse('customer "{customer_id}" has {quantity:d} of "{name}" in the cart'))
def customer_cart(checkout, add_to_cart, customer_id, quantity, name):
    checkout["customer_id"] = customer_id
    add_to_cart(customer_id, checkout["products"][name].id, quantity)


@given("the customer has placed the order")
def order_already_placed(checkout, place_order):
    _place(checkout, place_order)


@given("payment has been initiated")
def payment_already_initiated(checkout):
    _initiate(checkout)


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when("the customer places the order")
def customer_places_order(checkout, place_order):
    _place(checkout, place_order)


@when("the customer initiates payment")
def customer_initiates_payment(checkout):
    _initiate(checkout)


@when(parsers.parse('the gateway reports a capture of {amount:d} "{currency}"'))
def gateway_reports_capture(checkout, deliver, amount, currency):
    checkout["last_delivery"] = {"amount": amount, "currency": currency}
    checkout["outcome"] = deliver(checkout["reference"], amount, currency=currency)


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.parse("the order total is {total:f}"))
def order_total(checkout, total):
    assert _order(checkout).total_amount == total


@then(parsers.parse('the stock of "{name}" is {stock:d}'))
def stock_level(checkout, name, stock):
    product = checkout["products"][name]
    assert current_domain.repository_for(Product).get(str(product.id)).stock == stock


@then(parsers.parse('the order is "{status}" with payment "{payment_status}"'))
def order_state(checkout, status, payment_status):
    order = _order(checkout)
    assert order.status == status
    assert order.payment_status == payment_status


@then("the customer's cart is empty")
def cart_is_empty(checkout):
    cart = current_domain.repository_for(Cart).find_for_customer(checkout["customer_id"])
    assert cart.is_empty is True


@then(parsers.parse('the payment attempt failed with reason "{reason}"'))
def attempt_failed(checkout, reason):
    attempt = _attempt(checkout)
    assert attempt.status == "Failed"
    assert attempt.failure_reason == reason
