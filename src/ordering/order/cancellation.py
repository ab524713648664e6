"""Order cancellation and payment failure: commands and handler."""

import json

import structlog
from protean import handle
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from ordering.config import get_settings
from ordering.domain import ordering
from ordering.errors import InvalidStateTransition
from ordering.order.order import Order, OrderStatus
from ordering.payment.payment import Payment, PaymentStatus
from ordering.payment.queries import payment_for_order

logger = structlog.get_logger(__name__)


@ordering.command(part_of="Order")
class CancelOrder:
    order_id = Identifier(required=True)
    reason = String(required=True, max_length=500)


@ordering.command(part_of="Order")
class CancelOrderItems:
    order_id = Identifier(required=True)
    item_ids = Text(required=True)  # JSON: list of order item IDs
    reason = String(required=True, max_length=500)


@ordering.command(part_of="Order")
class FailOrderPayment:
    order_id = Identifier(required=True)
    fail_code = String(max_length=100)
    fail_message = String(max_length=500)


@ordering.command_handler(part_of=Order)
class CancelOrderHandler:
    @handle(CancelOrder)
    def cancel_order(self, command):
        order_repo = current_domain.repository_for(Order)
        order = order_repo.get(command.order_id)

        if OrderStatus(order.status) is OrderStatus.CANCELLED:
            logger.info("Order already cancelled", order_id=str(order.id))
            return str(order.id)

        payment = payment_for_order(command.order_id)

        order.cancel(reason=command.reason, grace_period=get_settings().cancel_grace_period)
        payment.cancel(reason=command.reason)

        current_domain.repository_for(Payment).add(payment)
        order_repo.add(order)

        logger.info(
            "Order cancelled",
            order_id=str(order.id),
            reason=command.reason,
            refund_pending=payment.reconciliation_pending,
        )
        return str(order.id)

    @handle(CancelOrderItems)
    def cancel_order_items(self, command):
        order_repo = current_domain.repository_for(Order)
        order = order_repo.get(command.order_id)
        payment = payment_for_order(command.order_id)
        settings = get_settings()

        if OrderStatus(order.status) is not OrderStatus.CONFIRMED:
            raise InvalidStateTransition({"status": [f"Cannot cancel items of an order in {order.status} state"]})

        item_ids = json.loads(command.item_ids)
        remaining = {str(item.id) for item in order.active_items()}
        if remaining and set(map(str, item_ids)) == remaining:
            order.cancel(reason=command.reason, grace_period=settings.cancel_grace_period)
            payment.cancel(reason=command.reason)
        else:
            refund_amount = order.cancel_items(item_ids, reason=command.reason, grace_period=settings.cancel_grace_period)
            if refund_amount > 0:
                payment.request_partial_refund(refund_amount, reason=command.reason)

        current_domain.repository_for(Payment).add(payment)
        order_repo.add(order)

        logger.info(
            "Order items cancelled",
            order_id=str(order.id),
            item_count=len(item_ids),
            order_status=order.status,
            refund_outstanding=payment.outstanding_refund,
        )
        return str(order.id)

    @handle(FailOrderPayment)
    def fail_order_payment(self, command):
        order_repo = current_domain.repository_for(Order)
        order = order_repo.get(command.order_id)
        payment = payment_for_order(command.order_id)

        if PaymentStatus(payment.status) is PaymentStatus.FAILED:
            logger.info("Payment already failed", order_id=str(order.id))
            return str(order.id)

        payment.mark_failed(fail_code=command.fail_code, fail_message=command.fail_message)
        order.cancel(
            reason=f"Payment failed: {command.fail_message or command.fail_code}",
            grace_period=get_settings().cancel_grace_period,
        )

        current_domain.repository_for(Payment).add(payment)
        order_repo.add(order)

        logger.info("Order cancelled after payment failure", order_id=str(order.id), fail_code=command.fail_code)
        return str(order.id)
