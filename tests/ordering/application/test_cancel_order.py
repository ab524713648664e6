"""Application tests for order cancellation, stock release and refunds."""

from datetime import timedelta

import pytest
from ordering.checkout.orchestrator import OrderOrchestrator
from ordering.config import CheckoutSettings, set_settings
from ordering.errors import InvalidStateTransition
from ordering.order.order import OrderStatus
from ordering.payment.payment import PaymentStatus
from protean import current_domain


def _order_events(name):
    messages = current_domain.event_store.store.read("ordering::order")
    return [m for m in messages if m.metadata.headers.type == f"Ordering.{name}.v1"]


class TestCancelPendingOrder:
    def test_cancel_pending_order(self, orchestrator, order_id):
        order = orchestrator.cancel_order(order_id, reason="changed mind")

        payment = orchestrator.get_payment(order_id)
        assert order.status == OrderStatus.CANCELLED.value
        assert order.cancellation_reason == "changed mind"
        assert payment.status == PaymentStatus.CANCELLED.value
        assert payment.reconciliation_pending is False

    def test_cancel_releases_every_reservation(self, orchestrator, stock, order_id):
        orchestrator.cancel_order(order_id, reason="changed mind")

        assert stock.held_for(order_id) == []
        assert stock.available("prod-A") == 10
        assert stock.available("prod-B") == 10

    def test_cancel_unpaid_order_does_not_call_gateway(self, orchestrator, gateway, order_id):
        orchestrator.cancel_order(order_id, reason="changed mind")
        assert gateway.calls_to("cancel_payment") == []

    def test_cancel_emits_order_cancelled(self, orchestrator, order_id):
        orchestrator.cancel_order(order_id, reason="changed mind")

        cancelled = _order_events("OrderCancelled")
        assert len(cancelled) == 1
        assert cancelled[0].data["order_id"] == order_id

    def test_cancel_twice_is_a_no_op(self, orchestrator, stock, order_id):
        orchestrator.cancel_order(order_id, reason="changed mind")
        release_calls = len([c for c in stock.calls if c["method"] == "release"])

        order = orchestrator.cancel_order(order_id, reason="again")

        assert order.status == OrderStatus.CANCELLED.value
        assert order.cancellation_reason == "changed mind"
        assert len(_order_events("OrderCancelled")) == 1
        assert len([c for c in stock.calls if c["method"] == "release"]) == release_calls


class TestCancelPaidOrder:
    def test_cancel_paid_order_refunds_full_amount(self, orchestrator, gateway, order_id):
        orchestrator.confirm_payment(order_id, payment_key="pk-001")

        orchestrator.cancel_order(order_id, reason="changed mind")

        calls = gateway.calls_to("cancel_payment")
        assert len(calls) == 1
        assert calls[0]["cancel_amount"] == 2500
        assert calls[0]["payment_key"] == "pk-001"
        assert len(calls[0]["order_item_ids"]) == 2

    def test_refund_is_recorded(self, orchestrator, order_id):
        orchestrator.confirm_payment(order_id, payment_key="pk-001")
        orchestrator.cancel_order(order_id, reason="changed mind")

        payment = orchestrator.get_payment(order_id)
        assert payment.status == PaymentStatus.CANCELLED.value
        assert payment.reconciliation_pending is False
        assert payment.cancelled_amount == 2500
        assert len(payment.cancellations) == 1

    def test_gateway_failure_does_not_block_cancellation(self, orchestrator, gateway, order_id):
        orchestrator.confirm_payment(order_id, payment_key="pk-001")
        gateway.cancel_failures = 1

        order = orchestrator.cancel_order(order_id, reason="changed mind")

        payment = orchestrator.get_payment(order_id)
        assert order.status == OrderStatus.CANCELLED.value
        assert payment.status == PaymentStatus.CANCELLED.value
        assert payment.reconciliation_pending is True
        assert payment.cancelled_amount == 0

    def test_cancel_after_grace_period_is_rejected(self, stock, gateway, order_id):
        set_settings(CheckoutSettings(cancel_grace_period=timedelta(0), retry_backoff_seconds=0.0))
        orchestrator = OrderOrchestrator()
        orchestrator.confirm_payment(order_id, payment_key="pk-001")

        with pytest.raises(InvalidStateTransition):
            orchestrator.cancel_order(order_id, reason="too late")

        assert orchestrator.get_order(order_id).status == OrderStatus.CONFIRMED.value
        assert orchestrator.get_payment(order_id).status == PaymentStatus.PAID.value
        assert gateway.calls_to("cancel_payment") == []
        assert len(stock.held_for(order_id)) == 2


class TestReleaseFailures:
    def test_release_failure_is_not_fatal(self, orchestrator, stock, order_id):
        stock.fail_next_releases(3)

        order = orchestrator.cancel_order(order_id, reason="changed mind")

        assert order.status == OrderStatus.CANCELLED.value
        # First token exhausted its retries and stays held until it expires
        assert len(stock.held_for(order_id)) == 1

    def test_transient_release_failure_is_retried(self, orchestrator, stock, order_id):
        stock.fail_next_releases(1)

        orchestrator.cancel_order(order_id, reason="changed mind")

        assert stock.held_for(order_id) == []
