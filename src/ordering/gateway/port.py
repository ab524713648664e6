"""Payment gateway port (abstract interface).

Defines the contract that payment processor adapters must implement, so the
orchestrator can run against FakeGateway in development and tests and against
TossGateway in production without any change to domain code.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class PaymentSession:
    """What the client needs to open the processor's checkout widget."""

    order_id: str
    amount: int
    order_name: str
    customer_name: str
    client_key: str
    success_url: str
    fail_url: str


@dataclass(frozen=True)
class ConfirmResult:
    """Result of a successful payment approval."""

    payment_key: str
    order_id: str
    approved_amount: int
    approved_at: datetime
    status: str = "DONE"
    method: str | None = None


@dataclass(frozen=True)
class CancelResult:
    """Result of a successful cancellation of a captured payment."""

    payment_key: str
    cancel_amount: int
    transaction_key: str | None
    cancelled_at: datetime


class PaymentGateway(ABC):
    """Abstract payment gateway interface."""

    @abstractmethod
    def prepare(self, order_id: str, amount: int, order_name: str, customer_name: str) -> PaymentSession:
        """Describe the checkout session for an order awaiting payment."""
        ...

    @abstractmethod
    def confirm(self, payment_key: str, order_id: str, amount: int) -> ConfirmResult:
        """Approve a payment the customer authorized. Raises ``GatewayError`` on rejection."""
        ...

    @abstractmethod
    def cancel_payment(
        self,
        order_id: str,
        payment_key: str,
        cancel_amount: int,
        order_item_ids: list[str],
        reason: str,
    ) -> CancelResult:
        """Refund a captured payment. Raises ``GatewayError`` on rejection."""
        ...
