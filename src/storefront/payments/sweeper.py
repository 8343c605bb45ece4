"""Stuck-payment sweeper.

A pending attempt whose notification never arrived would hold its order's
stock forever. ``sweep_stuck_payments`` expires every pending attempt older
than the payment timeout, one unit of work per attempt, so one bad attempt
never blocks the others.

Runs either inside the API process (``StuckPaymentSweeper``, started by the
application lifespan) or once per invocation from an external scheduler via
``python src/manage.py sweep``.
"""

import asyncio
import contextlib
from datetime import UTC, datetime

import structlog
from protean import handle
from protean.fields import Identifier
from protean.utils.globals import current_domain

from storefront.catalogue.stock_movement import MovementAction
from storefront.config import get_settings
from storefront.domain import storefront
from storefront.ordering.order import CancellationActor, Order, OrderStatus, PaymentStatus
from storefront.ordering.reservation import release_reservation
from storefront.payments.attempt import TIMEOUT_REASON, PaymentAttempt

logger = structlog.get_logger(__name__)


@storefront.command(part_of="PaymentAttempt")
class ExpirePaymentAttempt:
    payment_attempt_id = Identifier(required=True)


@storefront.command_handler(part_of=PaymentAttempt)
class PaymentExpiryHandler:
    @handle(ExpirePaymentAttempt)
    def expire_payment_attempt(self, command):
        attempt_repo = current_domain.repository_for(PaymentAttempt)
        attempt = attempt_repo.get(command.payment_attempt_id)

        # Resolved by a notification since it was selected
        if not attempt.is_pending:
            return False

        order_repo = current_domain.repository_for(Order)
        order = order_repo.get(attempt.order_id)
        if order.payment_status == PaymentStatus.PAID.value:
            logger.warning(
                "Skipping stuck attempt for an order that is already paid",
                payment_attempt_id=str(attempt.id),
                order_id=str(order.id),
            )
            return False

        attempt.record_failure(TIMEOUT_REASON)

        if order.status != OrderStatus.CANCELLED.value:
            release_reservation(
                order,
                MovementAction.PAYMENT_TIMEOUT,
                payment_attempt_id=str(attempt.id),
                reason=TIMEOUT_REASON,
            )
            order.cancel(reason="Payment timed out", cancelled_by=CancellationActor.SYSTEM.value)
            order_repo.add(order)

        attempt_repo.add(attempt)
        logger.info("Expired stuck payment attempt", payment_attempt_id=str(attempt.id), order_id=str(order.id))
        return True


def sweep_stuck_payments(as_of: datetime | None = None, timeout_minutes: int | None = None) -> int:
    """Expire pending attempts older than the timeout. Returns how many were expired."""
    as_of = as_of or datetime.now(UTC)
    if timeout_minutes is None:
        timeout_minutes = get_settings().payment_timeout_minutes

    stuck = [
        attempt
        for attempt in current_domain.repository_for(PaymentAttempt).find_pending()
        if attempt.is_stuck(as_of, timeout_minutes)
    ]
    if not stuck:
        logger.debug("No stuck payment attempts found", as_of=as_of.isoformat())
        return 0

    expired_count = 0
    for attempt in stuck:
        try:
            if current_domain.process(
                ExpirePaymentAttempt(payment_attempt_id=str(attempt.id)),
                asynchronous=False,
            ):
                expired_count += 1
        except Exception:
            logger.exception(
                "Failed to expire stuck payment attempt",
                payment_attempt_id=str(attempt.id),
                order_id=str(attempt.order_id),
            )

    logger.info(
        "Stuck payment sweep complete",
        candidates=len(stuck),
        expired_count=expired_count,
        timeout_minutes=timeout_minutes,
    )
    return expired_count


class StuckPaymentSweeper:
    """Runs ``sweep_stuck_payments`` periodically in a worker thread off the event loop."""

    def __init__(self, domain, interval_minutes: float, timeout_minutes: int | None = None) -> None:
        self.domain = domain
        self.interval_seconds = interval_minutes * 60
        self.timeout_minutes = timeout_minutes
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def run_once(self) -> int:
        with self.domain.domain_context():
            return sweep_stuck_payments(timeout_minutes=self.timeout_minutes)

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await asyncio.to_thread(self.run_once)
            except Exception:
                logger.exception("Stuck payment sweep crashed")

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._loop())
        logger.info("Stuck payment sweeper started", interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("Stuck payment sweeper stopped")
