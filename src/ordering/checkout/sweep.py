"""Maintenance sweeps: expire abandoned payments and retry outstanding refunds.

Designed to be triggered periodically by an external scheduler (cron, K8s
CronJob) via the maintenance API endpoints.
"""

from datetime import UTC, datetime

import structlog

from ordering.checkout.orchestrator import OrderOrchestrator
from ordering.errors import CheckoutError, InvalidStateTransition
from ordering.payment.payment import PaymentStatus
from ordering.payment.queries import payments_awaiting_reconciliation, payments_in_status

logger = structlog.get_logger(__name__)


class PaymentExpirySweeper:
    """Cancel orders whose payment stayed READY for longer than the payment TTL."""

    def __init__(self, orchestrator: OrderOrchestrator) -> None:
        self.orchestrator = orchestrator

    def run(self, now: datetime | None = None) -> int:
        now = now or datetime.now(UTC)
        cutoff = now - self.orchestrator.settings.payment_ttl

        stale = payments_in_status(PaymentStatus.READY, created_before=cutoff)
        if not stale:
            logger.info("No expired payments found", cutoff=cutoff.isoformat())
            return 0

        expired = 0
        for payment in stale:
            try:
                self.orchestrator.cancel_order(str(payment.order_id), reason="Payment not completed in time")
                expired += 1
            except (InvalidStateTransition, CheckoutError) as exc:
                # The order moved on since the query ran, or its lock is busy
                logger.warning(
                    "Could not expire payment",
                    order_id=str(payment.order_id),
                    error=str(exc),
                )

        logger.info("Expired stale payments", expired_count=expired, cutoff=cutoff.isoformat())
        return expired


class PaymentReconciler:
    """Retry refunds for cancelled payments the processor has not acknowledged yet."""

    def __init__(self, orchestrator: OrderOrchestrator) -> None:
        self.orchestrator = orchestrator

    def run(self) -> int:
        pending = payments_awaiting_reconciliation()
        if not pending:
            return 0

        reconciled = 0
        for payment in pending:
            if self.orchestrator.refund(str(payment.order_id)):
                reconciled += 1

        logger.info("Reconciled refunds", reconciled_count=reconciled, pending_count=len(pending))
        return reconciled
