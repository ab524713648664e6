"""Domain events for the Payment aggregate."""

from protean.fields import Boolean, DateTime, Identifier, Integer, String

from ordering.domain import ordering


@ordering.event(part_of="Payment")
class PaymentReady:
    """A payment was opened for a newly placed order and awaits confirmation."""

    __version__ = 1

    payment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    amount = Integer(required=True)
    pg_provider = String(max_length=50)
    created_at = DateTime(required=True)


@ordering.event(part_of="Payment")
class PaymentConfirmed:
    """The processor approved the payment and the money was captured."""

    __version__ = 1

    payment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    payment_key = String(required=True)
    amount = Integer(required=True)
    approved_at = DateTime(required=True)


@ordering.event(part_of="Payment")
class PaymentFailed:
    """The payment failed at the processor before any money was captured."""

    __version__ = 1

    payment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    fail_code = String(max_length=100)
    fail_message = String(max_length=500)
    failed_at = DateTime(required=True)


@ordering.event(part_of="Payment")
class PaymentCancelled:
    """The payment was cancelled. A pending reconciliation means a refund is still owed."""

    __version__ = 1

    payment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    reason = String(max_length=500)
    previous_status = String(max_length=50)
    reconciliation_pending = Boolean(default=False)
    cancelled_at = DateTime(required=True)


@ordering.event(part_of="Payment")
class PaymentRefunded:
    """The processor acknowledged the cancellation of a captured payment."""

    __version__ = 1

    payment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    amount = Integer(required=True)
    transaction_key = String(max_length=255)
    refunded_at = DateTime(required=True)


@ordering.event(part_of="Payment")
class PaymentRefundRequested:
    """Part of a captured payment is owed back because some order items were cancelled."""

    __version__ = 1

    payment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    amount = Integer(required=True)
    reason = String(max_length=500)
    requested_at = DateTime(required=True)
