"""Payment aggregate (CQRS): the settlement side of an order.

Every order owns exactly one payment, created READY alongside the order. The
payment keeps an append-only trail of its transitions and of the refunds the
processor acknowledged. Payments are never deleted.

State Machine:
    READY → PAID → CANCELLED
    READY → FAILED
    READY → CANCELLED

Cancelling a PAID payment, or owing back part of it after some order items
were cancelled, leaves ``reconciliation_pending`` set until the processor
confirms the refund.
"""

from datetime import UTC, datetime
from enum import Enum

from protean.fields import Boolean, DateTime, HasMany, Identifier, Integer, String

from ordering.domain import ordering
from ordering.errors import IntegrityError, PaymentStateConflict
from ordering.payment.events import (
    PaymentCancelled,
    PaymentConfirmed,
    PaymentFailed,
    PaymentReady,
    PaymentRefunded,
    PaymentRefundRequested,
)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class PaymentStatus(Enum):
    READY = "Ready"
    PAID = "Paid"
    CANCELLED = "Cancelled"
    FAILED = "Failed"

    def can_pay(self) -> bool:
        return self is PaymentStatus.READY

    def can_fail(self) -> bool:
        return self is PaymentStatus.READY

    def can_cancel(self) -> bool:
        return self in (PaymentStatus.READY, PaymentStatus.PAID)

    def is_terminal(self) -> bool:
        return self in (PaymentStatus.CANCELLED, PaymentStatus.FAILED)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@ordering.entity(part_of="Payment")
class PaymentTransition:
    """One recorded state change of the payment."""

    from_status = String(max_length=50)
    to_status = String(max_length=50, required=True)
    reason = String(max_length=500)
    occurred_at = DateTime(required=True)


@ordering.entity(part_of="Payment")
class PaymentCancellation:
    """A refund acknowledged by the processor."""

    amount = Integer(required=True, min_value=0)
    transaction_key = String(max_length=255)
    reason = String(max_length=500)
    cancelled_at = DateTime(required=True)


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@ordering.aggregate
class Payment:
    order_id = Identifier(required=True)
    payment_key = String(max_length=255)
    amount = Integer(required=True, min_value=0)
    status = String(choices=PaymentStatus, default=PaymentStatus.READY.value)
    pg_provider = String(max_length=50, default="TOSS")
    approved_at = DateTime()
    fail_code = String(max_length=100)
    fail_message = String(max_length=500)
    refund_requested = Integer(default=0)
    cancelled_amount = Integer(default=0)
    reconciliation_pending = Boolean(default=False)
    transitions = HasMany(PaymentTransition)
    cancellations = HasMany(PaymentCancellation)
    created_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def ready(cls, order_id: str, amount: int, pg_provider: str = "TOSS") -> "Payment":
        now = datetime.now(UTC)
        payment = cls(
            order_id=order_id,
            amount=amount,
            status=PaymentStatus.READY.value,
            pg_provider=pg_provider,
            created_at=now,
            updated_at=now,
        )
        payment.add_transitions(
            PaymentTransition(
                from_status=None,
                to_status=PaymentStatus.READY.value,
                reason="Order placed",
                occurred_at=now,
            )
        )
        payment.raise_(
            PaymentReady(
                payment_id=str(payment.id),
                order_id=str(order_id),
                amount=amount,
                pg_provider=pg_provider,
                created_at=now,
            )
        )
        return payment

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    def _move_to(self, target: PaymentStatus, reason: str, now: datetime) -> str:
        previous = self.status
        self.status = target.value
        self.updated_at = now
        self.add_transitions(
            PaymentTransition(
                from_status=previous,
                to_status=target.value,
                reason=reason,
                occurred_at=now,
            )
        )
        return previous

    @property
    def outstanding_refund(self) -> int:
        return (self.refund_requested or 0) - (self.cancelled_amount or 0)

    # -------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------
    def mark_paid(self, payment_key: str, approved_amount: int, approved_at: datetime | None = None) -> None:
        """Record the processor's approval. The approved amount must equal the payment amount."""
        current = PaymentStatus(self.status)
        if not current.can_pay():
            raise PaymentStateConflict({"status": [f"Cannot confirm a payment in {current.value} state"]})
        if approved_amount != self.amount:
            raise IntegrityError(
                "Approved amount does not match the payment amount",
                order_id=str(self.order_id),
                expected=self.amount,
                approved=approved_amount,
            )

        now = datetime.now(UTC)
        self.payment_key = payment_key
        self.approved_at = approved_at or now
        self._move_to(PaymentStatus.PAID, "Approved by processor", now)

        self.raise_(
            PaymentConfirmed(
                payment_id=str(self.id),
                order_id=str(self.order_id),
                payment_key=payment_key,
                amount=self.amount,
                approved_at=self.approved_at,
            )
        )

    def mark_failed(self, fail_code: str, fail_message: str) -> None:
        current = PaymentStatus(self.status)
        if not current.can_fail():
            raise PaymentStateConflict({"status": [f"Cannot fail a payment in {current.value} state"]})

        now = datetime.now(UTC)
        self.fail_code = fail_code
        self.fail_message = fail_message
        self._move_to(PaymentStatus.FAILED, fail_message or fail_code, now)

        self.raise_(
            PaymentFailed(
                payment_id=str(self.id),
                order_id=str(self.order_id),
                fail_code=fail_code,
                fail_message=fail_message,
                failed_at=now,
            )
        )

    def cancel(self, reason: str) -> None:
        """Cancel the payment. A captured payment stays flagged until its refund is recorded."""
        current = PaymentStatus(self.status)
        if not current.can_cancel():
            raise PaymentStateConflict({"status": [f"Cannot cancel a payment in {current.value} state"]})

        now = datetime.now(UTC)
        if current is PaymentStatus.PAID:
            self.refund_requested = self.amount
        self.reconciliation_pending = self.outstanding_refund > 0
        previous = self._move_to(PaymentStatus.CANCELLED, reason, now)

        self.raise_(
            PaymentCancelled(
                payment_id=str(self.id),
                order_id=str(self.order_id),
                reason=reason,
                previous_status=previous,
                reconciliation_pending=self.reconciliation_pending,
                cancelled_at=now,
            )
        )

    def request_partial_refund(self, amount: int, reason: str) -> None:
        """Owe back part of a captured payment. The payment stays PAID until fully cancelled."""
        current = PaymentStatus(self.status)
        if current is not PaymentStatus.PAID:
            raise PaymentStateConflict({"status": [f"Cannot refund part of a payment in {current.value} state"]})
        if amount <= 0 or (self.refund_requested or 0) + amount > self.amount:
            raise IntegrityError(
                "Partial refund must be positive and within the captured amount",
                order_id=str(self.order_id),
                amount=amount,
                refund_requested=self.refund_requested or 0,
                captured=self.amount,
            )

        now = datetime.now(UTC)
        self.refund_requested = (self.refund_requested or 0) + amount
        self.reconciliation_pending = True
        self.updated_at = now

        self.raise_(
            PaymentRefundRequested(
                payment_id=str(self.id),
                order_id=str(self.order_id),
                amount=amount,
                reason=reason,
                requested_at=now,
            )
        )

    def record_refund(self, amount: int, transaction_key: str | None, cancelled_at: datetime | None = None) -> None:
        """Record the processor's acknowledgement of a refund and clear the reconciliation flag."""
        current = PaymentStatus(self.status)
        if current not in (PaymentStatus.PAID, PaymentStatus.CANCELLED) or not self.reconciliation_pending:
            raise PaymentStateConflict({"status": ["No refund is outstanding for this payment"]})
        if amount != self.outstanding_refund:
            raise IntegrityError(
                "Refunded amount does not match the outstanding amount",
                order_id=str(self.order_id),
                expected=self.outstanding_refund,
                refunded=amount,
            )

        now = cancelled_at or datetime.now(UTC)
        self.add_cancellations(
            PaymentCancellation(
                amount=amount,
                transaction_key=transaction_key,
                reason="Refund acknowledged by processor",
                cancelled_at=now,
            )
        )
        self.cancelled_amount = (self.cancelled_amount or 0) + amount
        self.reconciliation_pending = False
        self.updated_at = now

        self.raise_(
            PaymentRefunded(
                payment_id=str(self.id),
                order_id=str(self.order_id),
                amount=amount,
                transaction_key=transaction_key,
                refunded_at=now,
            )
        )
