"""Application tests for cancelling some items of a confirmed order."""

import json

import pytest
from ordering.checkout.sweep import PaymentReconciler
from ordering.errors import InvalidStateTransition
from ordering.order.order import OrderItemStatus, OrderStatus
from ordering.payment.payment import PaymentStatus
from protean import current_domain
from protean.exceptions import ValidationError


@pytest.fixture()
def confirmed(orchestrator, order_id):
    orchestrator.confirm_payment(order_id, payment_key="pk-001")
    return orchestrator.get_order(order_id)


def _item_ids(order):
    return [str(item.id) for item in order.items]


class TestPartialCancellation:
    def test_cancelling_one_item_refunds_its_subtotal(self, orchestrator, gateway, confirmed):
        order_id = str(confirmed.id)
        item_a, item_b = _item_ids(confirmed)

        order = orchestrator.cancel_order_items(order_id, [item_b], reason="no longer needed")

        payment = orchestrator.get_payment(order_id)
        assert order.status == OrderStatus.CONFIRMED.value
        assert order.cancelled_item_ids() == [item_b]
        assert payment.status == PaymentStatus.PAID.value
        assert payment.refund_requested == 500
        assert payment.cancelled_amount == 500
        assert payment.reconciliation_pending is False

        refunds = gateway.calls_to("cancel_payment")
        assert len(refunds) == 1
        assert refunds[0]["cancel_amount"] == 500
        assert refunds[0]["order_item_ids"] == [item_b]
        assert refunds[0]["reason"] == "no longer needed"

    def test_only_selected_items_are_restocked(self, orchestrator, stock, confirmed):
        _, item_b = _item_ids(confirmed)

        orchestrator.cancel_order_items(str(confirmed.id), [item_b], reason="no longer needed")

        assert stock.available("prod-A") == 8
        assert stock.available("prod-B") == 10
        assert len(stock.held_for(str(confirmed.id))) == 1

    def test_emits_order_items_cancelled(self, orchestrator, confirmed):
        _, item_b = _item_ids(confirmed)

        orchestrator.cancel_order_items(str(confirmed.id), [item_b], reason="no longer needed")

        messages = current_domain.event_store.store.read("ordering::order")
        cancelled = [m for m in messages if m.metadata.headers.type == "Ordering.OrderItemsCancelled.v1"]
        assert len(cancelled) == 1
        assert json.loads(cancelled[0].data["item_ids"]) == [item_b]
        assert cancelled[0].data["refund_amount"] == 500

    def test_failed_partial_refund_is_reconciled_later(self, orchestrator, gateway, confirmed):
        order_id = str(confirmed.id)
        _, item_b = _item_ids(confirmed)
        gateway.cancel_failures = 1

        orchestrator.cancel_order_items(order_id, [item_b], reason="no longer needed")
        assert orchestrator.get_payment(order_id).reconciliation_pending is True

        assert PaymentReconciler(orchestrator).run() == 1
        payment = orchestrator.get_payment(order_id)
        assert payment.cancelled_amount == 500
        assert payment.status == PaymentStatus.PAID.value


class TestCancellingEveryRemainingItem:
    def test_selecting_all_items_cancels_the_order(self, orchestrator, gateway, stock, confirmed):
        order_id = str(confirmed.id)

        order = orchestrator.cancel_order_items(order_id, _item_ids(confirmed), reason="changed mind")

        payment = orchestrator.get_payment(order_id)
        assert order.status == OrderStatus.CANCELLED.value
        assert payment.status == PaymentStatus.CANCELLED.value
        assert payment.cancelled_amount == 2500
        assert stock.held_for(order_id) == []

    def test_last_item_after_partial_cancel_refunds_the_rest(self, orchestrator, gateway, stock, confirmed):
        order_id = str(confirmed.id)
        item_a, item_b = _item_ids(confirmed)
        orchestrator.cancel_order_items(order_id, [item_b], reason="first")

        order = orchestrator.cancel_order_items(order_id, [item_a], reason="second")

        payment = orchestrator.get_payment(order_id)
        assert order.status == OrderStatus.CANCELLED.value
        assert {item.item_status for item in order.items} == {OrderItemStatus.CANCELLED.value}
        assert payment.cancelled_amount == 2500
        assert [call["cancel_amount"] for call in gateway.calls_to("cancel_payment")] == [500, 2000]
        assert stock.available("prod-A") == 10
        assert stock.available("prod-B") == 10

    def test_full_cancel_after_partial_cancel_refunds_the_rest(self, orchestrator, gateway, confirmed):
        order_id = str(confirmed.id)
        _, item_b = _item_ids(confirmed)
        orchestrator.cancel_order_items(order_id, [item_b], reason="first")

        orchestrator.cancel_order(order_id, reason="second")

        assert orchestrator.get_payment(order_id).cancelled_amount == 2500
        assert gateway.calls_to("cancel_payment")[-1]["cancel_amount"] == 2000


class TestRejectedItemCancellation:
    def test_pending_order_is_rejected(self, orchestrator, stock, order_id):
        item_a = _item_ids(orchestrator.get_order(order_id))[0]

        with pytest.raises(InvalidStateTransition):
            orchestrator.cancel_order_items(order_id, [item_a], reason="changed mind")

        assert orchestrator.get_order(order_id).status == OrderStatus.PENDING.value
        assert len(stock.held_for(order_id)) == 2

    def test_unknown_item_is_rejected(self, orchestrator, gateway, confirmed):
        with pytest.raises(ValidationError):
            orchestrator.cancel_order_items(str(confirmed.id), ["not-an-item"], reason="changed mind")

        assert gateway.calls_to("cancel_payment") == []

    def test_cancelled_item_cannot_be_cancelled_again(self, orchestrator, confirmed):
        order_id = str(confirmed.id)
        _, item_b = _item_ids(confirmed)
        orchestrator.cancel_order_items(order_id, [item_b], reason="first")

        with pytest.raises(InvalidStateTransition):
            orchestrator.cancel_order_items(order_id, [item_b], reason="again")
