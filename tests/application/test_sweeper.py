"""Application tests for the stuck-payment sweeper."""

import asyncio
import threading
from datetime import UTC, datetime, timedelta
from unittest import mock

import pytest
from protean import current_domain
from storefront.catalogue.product import Product
from storefront.catalogue.stock_movement import MovementAction, StockMovement
from storefront.domain import storefront
from storefront.ordering.cancellation import CancelOrder
from storefront.ordering.order import Order, OrderStatus, PaymentStatus
from storefront.ordering.reservation import release_reservation
from storefront.payments.attempt import TIMEOUT_REASON, AttemptStatus, PaymentAttempt
from storefront.payments.initiation import initiate_payment
from storefront.payments.sweeper import StuckPaymentSweeper, sweep_stuck_payments

LATER = timedelta(minutes=31)


@pytest.fixture()
def product(make_product):
    return make_product(price=10.0, stock=5)


@pytest.fixture()
def pending_order(product, place_order):
    """Returns (order_id, gateway_reference) for an order awaiting payment."""
    order_id = place_order("cust-001", [(product, 2)])
    return order_id, initiate_payment(order_id, "cust-001").gateway_reference


def _attempt(reference):
    return current_domain.repository_for(PaymentAttempt).find_by_gateway_reference(reference)


def _stock(product):
    return current_domain.repository_for(Product).get(str(product.id)).stock


def _later():
    return datetime.now(UTC) + LATER


class TestSweep:
    def test_expires_stuck_attempt_and_restores_stock(self, pending_order, product):
        order_id, reference = pending_order

        assert sweep_stuck_payments(as_of=_later(), timeout_minutes=30) == 1

        attempt = _attempt(reference)
        assert attempt.status == AttemptStatus.FAILED.value
        assert attempt.failure_reason == TIMEOUT_REASON
        order = current_domain.repository_for(Order).get(order_id)
        assert order.status == OrderStatus.CANCELLED.value
        assert order.payment_status == PaymentStatus.FAILED.value
        assert order.cancelled_by == "System"
        assert _stock(product) == 5

        actions = [m.action for m in current_domain.repository_for(StockMovement).for_order(order_id)]
        assert actions.count(MovementAction.PAYMENT_TIMEOUT.value) == 1

    def test_young_attempt_is_left_alone(self, pending_order, product):
        _, reference = pending_order
        assert sweep_stuck_payments(as_of=datetime.now(UTC), timeout_minutes=30) == 0
        assert _attempt(reference).status == AttemptStatus.PENDING.value
        assert _stock(product) == 3

    def test_uses_configured_timeout(self, pending_order, monkeypatch):
        from storefront.config import get_settings

        monkeypatch.setenv("STOREFRONT_PAYMENT_TIMEOUT_MINUTES", "120")
        get_settings.cache_clear()

        assert sweep_stuck_payments(as_of=_later()) == 0
        assert sweep_stuck_payments(as_of=datetime.now(UTC) + timedelta(minutes=121)) == 1

    def test_overlapping_sweeps_release_once(self, pending_order, product):
        as_of = _later()
        assert sweep_stuck_payments(as_of=as_of, timeout_minutes=30) == 1
        assert sweep_stuck_payments(as_of=as_of, timeout_minutes=30) == 0
        assert _stock(product) == 5

    def test_late_capture_after_sweep_is_a_duplicate(self, pending_order, deliver):
        order_id, reference = pending_order
        sweep_stuck_payments(as_of=_later(), timeout_minutes=30)

        from storefront.payments.reconciliation import NotificationOutcome

        assert deliver(reference, 2000) == NotificationOutcome.DUPLICATE
        assert current_domain.repository_for(Order).get(order_id).status == OrderStatus.CANCELLED.value


class TestSweepSkips:
    def test_paid_order_is_never_overridden(self, pending_order, deliver, product):
        order_id, reference = pending_order
        deliver(reference, 2000)

        # A stray pending attempt left behind for the already-paid order
        stray = PaymentAttempt.create(
            order_id=order_id,
            customer_id="cust-001",
            amount=20.0,
            amount_minor=2000,
            currency="INR",
            gateway_reference="order_stray",
        )
        current_domain.repository_for(PaymentAttempt).add(stray)

        assert sweep_stuck_payments(as_of=_later(), timeout_minutes=30) == 0

        order = current_domain.repository_for(Order).get(order_id)
        assert order.status == OrderStatus.CONFIRMED.value
        assert order.payment_status == PaymentStatus.PAID.value
        assert _attempt("order_stray").status == AttemptStatus.PENDING.value
        assert _stock(product) == 3

    def test_already_cancelled_order_is_not_restocked_twice(self, pending_order, product):
        order_id, reference = pending_order
        current_domain.process(
            CancelOrder(order_id=order_id, reason="changed my mind", cancelled_by="Customer"),
            asynchronous=False,
        )
        assert _stock(product) == 5

        assert sweep_stuck_payments(as_of=_later(), timeout_minutes=30) == 1

        assert _attempt(reference).failure_reason == TIMEOUT_REASON
        assert _stock(product) == 5
        order = current_domain.repository_for(Order).get(order_id)
        assert order.cancelled_by == "Customer"


class TestSweepIsolation:
    def test_one_failing_attempt_does_not_stop_the_others(self, make_product, place_order):
        first = make_product(name="First", stock=5)
        second = make_product(name="Second", stock=5)
        broken_order_id = place_order("cust-001", [(first, 1)])
        initiate_payment(broken_order_id, "cust-001")
        healthy_order_id = place_order("cust-002", [(second, 1)])
        initiate_payment(healthy_order_id, "cust-002")

        def flaky_release(order, *args, **kwargs):
            if str(order.id) == broken_order_id:
                raise RuntimeError("database hiccup")
            return release_reservation(order, *args, **kwargs)

        with mock.patch("storefront.payments.sweeper.release_reservation", side_effect=flaky_release):
            expired = sweep_stuck_payments(as_of=_later(), timeout_minutes=30)

        assert expired == 1
        repo = current_domain.repository_for(Order)
        assert repo.get(healthy_order_id).status == OrderStatus.CANCELLED.value
        # Rolled back as a unit
        assert repo.get(broken_order_id).status == OrderStatus.PAYMENT_PENDING.value
        assert _stock(first) == 4
        assert _stock(second) == 5


class TestStuckPaymentSweeper:
    def test_run_once(self, pending_order, product):
        sweeper = StuckPaymentSweeper(storefront, interval_minutes=10, timeout_minutes=0)
        assert sweeper.run_once() == 1
        assert _stock(product) == 5

    def test_start_and_stop(self):
        sweeper = StuckPaymentSweeper(storefront, interval_minutes=10)

        async def lifecycle():
            sweeper.start()
            assert sweeper.running is True
            await sweeper.stop()
            assert sweeper.running is False

        asyncio.run(lifecycle())

    def test_stop_without_start_is_noop(self):
        sweeper = StuckPaymentSweeper(storefront, interval_minutes=10)
        asyncio.run(sweeper.stop())
        assert sweeper.running is False

    def test_sweep_runs_off_the_event_loop_thread(self):
        sweeper = StuckPaymentSweeper(storefront, interval_minutes=0)
        sweep_threads = []

        async def lifecycle():
            sweeper.start()
            for _ in range(100):
                if sweep_threads:
                    break
                await asyncio.sleep(0.01)
            await sweeper.stop()
            return threading.get_ident()

        with mock.patch.object(sweeper, "run_once", side_effect=lambda: sweep_threads.append(threading.get_ident())):
            loop_thread = asyncio.run(lifecycle())

        assert sweep_threads
        assert loop_thread not in sweep_threads
