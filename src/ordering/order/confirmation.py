"""Payment confirmation: command and handler.

Runs after the processor approved the payment. Re-checks both aggregates
under the order lock, so a cancellation that slipped in while the processor
was being called wins and this command fails with a state conflict.
"""

import structlog
from protean import handle
from protean.fields import DateTime, Identifier, Integer, String
from protean.utils.globals import current_domain

from ordering.domain import ordering
from ordering.order.order import Order
from ordering.payment.payment import Payment, PaymentStatus
from ordering.payment.queries import payment_for_order

logger = structlog.get_logger(__name__)


@ordering.command(part_of="Order")
class ConfirmPayment:
    order_id = Identifier(required=True)
    payment_key = String(required=True, max_length=255)
    approved_amount = Integer(required=True)
    approved_at = DateTime()


@ordering.command_handler(part_of=Order)
class ConfirmPaymentHandler:
    @handle(ConfirmPayment)
    def confirm_payment(self, command):
        order_repo = current_domain.repository_for(Order)
        payment_repo = current_domain.repository_for(Payment)

        order = order_repo.get(command.order_id)
        payment = payment_for_order(command.order_id)

        if PaymentStatus(payment.status) is PaymentStatus.PAID:
            logger.info("Payment already confirmed", order_id=str(order.id))
            return str(order.id)

        payment.mark_paid(
            payment_key=command.payment_key,
            approved_amount=command.approved_amount,
            approved_at=command.approved_at,
        )
        order.confirm()

        payment_repo.add(payment)
        order_repo.add(order)

        logger.info("Order confirmed", order_id=str(order.id), amount=payment.amount)
        return str(order.id)
