"""Read-side lookups for payments, which are addressed by their order."""

from datetime import datetime

from protean.utils.globals import current_domain

from ordering.errors import PaymentNotFound
from ordering.payment.payment import Payment, PaymentStatus
from ordering.utils.paging import fetch_all


def find_payment_for_order(order_id: str) -> Payment | None:
    results = current_domain.repository_for(Payment)._dao.query.filter(order_id=str(order_id)).all().items
    return results[0] if results else None


def payment_for_order(order_id: str) -> Payment:
    payment = find_payment_for_order(order_id)
    if payment is None:
        raise PaymentNotFound(f"No payment exists for order {order_id}", order_id=str(order_id))
    return payment


def payments_in_status(status: PaymentStatus, created_before: datetime | None = None) -> list[Payment]:
    filters = {"status": status.value}
    if created_before is not None:
        filters["created_at__lte"] = created_before
    query = current_domain.repository_for(Payment)._dao.query.filter(**filters).order_by("created_at")
    return fetch_all(query)


def payments_awaiting_reconciliation() -> list[Payment]:
    """Payments with a refund the processor has not acknowledged, whatever their status."""
    query = current_domain.repository_for(Payment)._dao.query.filter(reconciliation_pending=True).order_by("created_at")
    return fetch_all(query)
