"""BDD tests for checkout, reconciliation and refunds."""

from protean import current_domain
from pytest_bdd import scenarios, then, when
from storefront.ordering.cancellation import ApproveReturn, CancelOrder
from storefront.payments.attempt import PaymentAttempt
from storefront.payments.reconciliation import NotificationOutcome
from storefront.payments.refund import refund_payment

scenarios("features/checkout.feature")


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when("the gateway delivers the same notification again")
def redeliver_notification(checkout, deliver):
    last = checkout["last_delivery"]
    checkout["outcome"] = deliver(checkout["reference"], last["amount"], currency=last["currency"])


@when("the gateway reports a failed payment")
def gateway_reports_failure(checkout, deliver):
    checkout["outcome"] = deliver(checkout["reference"], 2000, event="payment.failed", error_code="card_declined")


@when("an admin approves the return")
def admin_approves_return(checkout):
    current_domain.process(ApproveReturn(order_id=checkout["order_id"]), asynchronous=False)


@when("an admin cancels the order")
def admin_cancels_order(checkout):
    current_domain.process(
        CancelOrder(order_id=checkout["order_id"], reason="Damaged in warehouse", cancelled_by="Admin"),
        asynchronous=False,
    )


@when("an admin refunds the payment")
def admin_refunds_payment(checkout):
    attempt = current_domain.repository_for(PaymentAttempt).find_by_gateway_reference(checkout["reference"])
    refund_payment(str(attempt.id))


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then("the notification is treated as a duplicate")
def notification_is_duplicate(checkout):
    assert checkout["outcome"] == NotificationOutcome.DUPLICATE
