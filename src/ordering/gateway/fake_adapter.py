"""Configurable fake payment gateway for development and testing.

Simulates the processor without any external calls. Outcomes are configured
at runtime, and every call is recorded in ``calls`` for assertions.
"""

from collections.abc import Callable
from datetime import UTC, datetime
from uuid import uuid4

from ordering.errors import GatewayError, GatewayUnavailable
from ordering.gateway.port import CancelResult, ConfirmResult, PaymentGateway, PaymentSession


class FakeGateway(PaymentGateway):
    """Configurable fake payment gateway."""

    def __init__(self) -> None:
        self.should_succeed: bool = True
        self.failure_code: str = "REJECT_CARD_PAYMENT"
        self.failure_message: str = "Card declined"
        self.approved_amount_override: int | None = None
        self.cancel_failures: int = 0
        self.unavailable_failures: int = 0
        self.on_confirm: Callable[[str], None] | None = None
        self.calls: list[dict] = []

    def configure(
        self,
        should_succeed: bool,
        failure_code: str = "REJECT_CARD_PAYMENT",
        failure_message: str = "Card declined",
    ) -> None:
        """Configure gateway behavior at runtime."""
        self.should_succeed = should_succeed
        self.failure_code = failure_code
        self.failure_message = failure_message

    def calls_to(self, method: str) -> list[dict]:
        return [call for call in self.calls if call["method"] == method]

    def prepare(self, order_id: str, amount: int, order_name: str, customer_name: str) -> PaymentSession:
        self.calls.append({"method": "prepare", "order_id": order_id, "amount": amount})
        return PaymentSession(
            order_id=order_id,
            amount=amount,
            order_name=order_name,
            customer_name=customer_name,
            client_key="test_ck_fake",
            success_url="http://localhost:8000/payments/success",
            fail_url="http://localhost:8000/payments/fail",
        )

    def confirm(self, payment_key: str, order_id: str, amount: int) -> ConfirmResult:
        self.calls.append({"method": "confirm", "payment_key": payment_key, "order_id": order_id, "amount": amount})

        if self.on_confirm is not None:
            self.on_confirm(order_id)

        if self.unavailable_failures > 0:
            self.unavailable_failures -= 1
            raise GatewayUnavailable("Processor timed out", order_id=order_id)

        if not self.should_succeed:
            raise GatewayError(self.failure_message, code=self.failure_code, order_id=order_id)

        approved = self.approved_amount_override if self.approved_amount_override is not None else amount
        return ConfirmResult(
            payment_key=payment_key,
            order_id=order_id,
            approved_amount=approved,
            approved_at=datetime.now(UTC),
            method="CARD",
        )

    def cancel_payment(
        self,
        order_id: str,
        payment_key: str,
        cancel_amount: int,
        order_item_ids: list[str],
        reason: str,
    ) -> CancelResult:
        self.calls.append(
            {
                "method": "cancel_payment",
                "order_id": order_id,
                "payment_key": payment_key,
                "cancel_amount": cancel_amount,
                "order_item_ids": list(order_item_ids),
                "reason": reason,
            }
        )

        if self.cancel_failures > 0:
            self.cancel_failures -= 1
            raise GatewayError("Cancellation rejected by processor", order_id=order_id)

        return CancelResult(
            payment_key=payment_key,
            cancel_amount=cancel_amount,
            transaction_key=f"fake_cxl_{uuid4().hex[:12]}",
            cancelled_at=datetime.now(UTC),
        )
