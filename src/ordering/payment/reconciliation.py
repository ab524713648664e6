"""Refund reconciliation: command and handler.

Records the processor's acknowledgement of a refund for a cancelled payment
that was left with ``reconciliation_pending`` set.
"""

import structlog
from protean import handle
from protean.fields import DateTime, Identifier, Integer, String
from protean.utils.globals import current_domain

from ordering.domain import ordering
from ordering.payment.payment import Payment
from ordering.payment.queries import payment_for_order

logger = structlog.get_logger(__name__)


@ordering.command(part_of="Payment")
class RecordRefund:
    order_id = Identifier(required=True)
    amount = Integer(required=True)
    transaction_key = String(max_length=255)
    cancelled_at = DateTime()


@ordering.command_handler(part_of=Payment)
class RecordRefundHandler:
    @handle(RecordRefund)
    def record_refund(self, command):
        payment = payment_for_order(command.order_id)
        payment.record_refund(
            amount=command.amount,
            transaction_key=command.transaction_key,
            cancelled_at=command.cancelled_at,
        )
        current_domain.repository_for(Payment).add(payment)

        logger.info(
            "Refund recorded",
            order_id=str(command.order_id),
            amount=command.amount,
            transaction_key=command.transaction_key,
        )
        return str(payment.id)
