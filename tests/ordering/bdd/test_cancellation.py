"""BDD tests for order cancellation and refunds."""

from ordering.checkout.sweep import PaymentReconciler
from pytest_bdd import parsers, scenarios, then, when

scenarios("features/cancellation.feature")


@when(parsers.cfparse('the order is cancelled with reason "{reason}"'))
def _(orchestrator, order_ref, reason):
    orchestrator.cancel_order(order_ref["order_id"], reason=reason)


@when("outstanding refunds are reconciled")
def _(orchestrator):
    PaymentReconciler(orchestrator).run()


@then("no refund was requested")
def _(gateway):
    assert gateway.calls_to("cancel_payment") == []


@then(parsers.cfparse("{amount:d} was refunded"))
def _(orchestrator, order_ref, amount):
    payment = orchestrator.get_payment(order_ref["order_id"])
    assert payment.cancelled_amount == amount
    assert payment.reconciliation_pending is False


@then("the payment awaits reconciliation")
def _(orchestrator, order_ref):
    assert orchestrator.get_payment(order_ref["order_id"]).reconciliation_pending is True
