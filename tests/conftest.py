import os
from pathlib import Path

import pytest
from protean.integrations.pytest import DomainFixture

WEBHOOK_SECRET = "whsec_test_secret"


def pytest_addoption(parser):
    parser.addoption(
        "--env",
        action="store",
        default="test",
        help="Config environment to run tests on",
    )


def pytest_sessionstart(session):
    """Pytest hook to run before collecting tests.

    PROTEAN_ENV must be set before the storefront domain is imported, since
    the domain reads its config overlay at construction time.
    """
    os.environ["PROTEAN_ENV"] = session.config.option.env
    os.environ["STOREFRONT_WEBHOOK_SECRET"] = WEBHOOK_SECRET
    os.environ["STOREFRONT_GATEWAY"] = "fake"
    os.environ["STOREFRONT_SWEEPER_ENABLED"] = "false"


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their directory location."""
    for item in items:
        test_path = Path(item.fspath)

        if "/domain/" in str(test_path):
            item.add_marker(pytest.mark.domain)
        elif "/application/" in str(test_path):
            item.add_marker(pytest.mark.application)
        elif "/integration/" in str(test_path):
            item.add_marker(pytest.mark.integration)
            # Integration tests are often slower
            if not any(m.name == "fast" for m in item.iter_markers()):
                item.add_marker(pytest.mark.slow)
        elif "/bdd/" in str(test_path):
            item.add_marker(pytest.mark.bdd)


@pytest.fixture(scope="session")
def storefront_bed():
    from storefront.domain import storefront

    bed = DomainFixture(storefront)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(storefront_bed):
    with storefront_bed.domain_context():
        yield

        from protean import current_domain

        # Clear all databases
        for _, provider in current_domain.providers.items():
            provider._data_reset()

        # Drain event stores
        current_domain.event_store.store._data_reset()


@pytest.fixture(autouse=True)
def _reset_adapters():
    """Give every test fresh gateway, account directory and e-mail adapters."""
    from storefront.accounts import reset_directory
    from storefront.config import get_settings
    from storefront.notifications.channel import reset_email_channel
    from storefront.payments.gateway import reset_gateway

    get_settings.cache_clear()
    reset_gateway()
    reset_directory()
    reset_email_channel()
    yield
    reset_gateway()
    reset_directory()
    reset_email_channel()


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------
SHIPPING_ADDRESS = {
    "name": "Asha Rao",
    "phone": "9876543210",
    "street": "12 MG Road",
    "city": "Bengaluru",
    "state": "Karnataka",
    "postal_code": "560001",
    "country": "India",
}


@pytest.fixture()
def shipping_address():
    return dict(SHIPPING_ADDRESS)


@pytest.fixture()
def gateway():
    from storefront.payments.gateway import get_gateway

    return get_gateway()


@pytest.fixture()
def directory():
    from storefront.accounts import get_directory

    return get_directory()


@pytest.fixture()
def mailbox():
    from storefront.notifications.channel import get_email_channel

    return get_email_channel()


@pytest.fixture()
def make_product():
    """Create and persist a product; returns it."""
    from protean import current_domain
    from storefront.catalogue.product import Product

    def _make(name="Widget A", price=10.0, stock=5, is_active=True, currency="INR"):
        product = Product.create(name=name, price=price, stock=stock, currency=currency, is_active=is_active)
        current_domain.repository_for(Product).add(product)
        return product

    return _make


@pytest.fixture()
def add_to_cart():
    from protean import current_domain
    from storefront.ordering.cart_items import AddToCart

    def _add(customer_id, product_id, quantity=1):
        command = AddToCart(customer_id=customer_id, product_id=str(product_id), quantity=quantity)
        return current_domain.process(command, asynchronous=False)

    return _add


@pytest.fixture()
def place_order(add_to_cart, shipping_address):
    """Fill the customer's cart with ``lines`` and place an order. Returns the order id."""
    import json

    from protean import current_domain
    from storefront.ordering.placement import PlaceOrder

    def _place(customer_id, lines):
        for product, quantity in lines:
            add_to_cart(customer_id, product.id, quantity)
        command = PlaceOrder(customer_id=customer_id, shipping_address=json.dumps(shipping_address))
        return current_domain.process(command, asynchronous=False)

    return _place


@pytest.fixture()
def notification_body():
    """Build a raw Razorpay-style webhook body."""
    import json

    def _body(gateway_reference, amount, event="payment.captured", payment_id="pay_test_001", currency="INR", **extra):
        entity = {
            "id": payment_id,
            "order_id": gateway_reference,
            "amount": amount,
            "currency": currency,
            **extra,
        }
        return json.dumps({"event": event, "payload": {"payment": {"entity": entity}}}).encode("utf-8")

    return _body


@pytest.fixture()
def sign():
    from storefront.payments.gateway.signature import compute_signature

    def _sign(body: bytes) -> str:
        return compute_signature(body, WEBHOOK_SECRET)

    return _sign


@pytest.fixture()
def deliver(notification_body, sign):
    """Sign and apply a webhook notification; returns the NotificationOutcome."""
    from storefront.payments.reconciliation import handle_notification

    def _deliver(gateway_reference, amount, **kwargs):
        body = notification_body(gateway_reference, amount, **kwargs)
        return handle_notification(body, sign(body))

    return _deliver
