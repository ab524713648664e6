"""Toss Payments gateway adapter.

Talks to the Toss Payments v1 REST API with httpx. Requests authenticate with
HTTP basic auth using the secret key as the username and an empty password.
Confirm and cancel calls carry an ``Idempotency-Key`` so they can be retried.
"""

from datetime import UTC, datetime

import httpx
import structlog

from ordering.errors import GatewayError, GatewayUnavailable
from ordering.gateway.port import CancelResult, ConfirmResult, PaymentGateway, PaymentSession

logger = structlog.get_logger(__name__)


def _parse_timestamp(value: str | None) -> datetime:
    if not value:
        return datetime.now(UTC)
    return datetime.fromisoformat(value)


class TossGateway(PaymentGateway):
    """Production Toss Payments adapter."""

    def __init__(
        self,
        secret_key: str,
        client_key: str,
        success_url: str,
        fail_url: str,
        base_url: str = "https://api.tosspayments.com",
        timeout: float = 10.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.client_key = client_key
        self.success_url = success_url
        self.fail_url = fail_url
        self.client = client or httpx.Client(base_url=base_url, timeout=timeout, auth=(secret_key, ""))

    def _post(self, path: str, payload: dict, idempotency_key: str, order_id: str) -> dict:
        try:
            response = self.client.post(path, json=payload, headers={"Idempotency-Key": idempotency_key})
        except httpx.TransportError as exc:
            raise GatewayUnavailable("Toss Payments is unreachable", order_id=order_id) from exc

        if response.status_code >= 500:
            raise GatewayUnavailable(
                "Toss Payments answered with a server error",
                order_id=order_id,
                status_code=response.status_code,
            )
        if response.is_error:
            body = response.json() if response.content else {}
            logger.warning(
                "Toss Payments rejected request",
                path=path,
                order_id=order_id,
                status_code=response.status_code,
                code=body.get("code"),
            )
            raise GatewayError(
                body.get("message", "Toss Payments rejected the request"),
                code=body.get("code"),
                order_id=order_id,
                status_code=response.status_code,
            )
        return response.json()

    def prepare(self, order_id: str, amount: int, order_name: str, customer_name: str) -> PaymentSession:
        return PaymentSession(
            order_id=order_id,
            amount=amount,
            order_name=order_name,
            customer_name=customer_name,
            client_key=self.client_key,
            success_url=self.success_url,
            fail_url=self.fail_url,
        )

    def confirm(self, payment_key: str, order_id: str, amount: int) -> ConfirmResult:
        body = self._post(
            "/v1/payments/confirm",
            {"paymentKey": payment_key, "orderId": order_id, "amount": amount},
            idempotency_key=f"confirm-{order_id}-{payment_key}",
            order_id=order_id,
        )
        return ConfirmResult(
            payment_key=body.get("paymentKey", payment_key),
            order_id=body.get("orderId", order_id),
            approved_amount=int(body["totalAmount"]),
            approved_at=_parse_timestamp(body.get("approvedAt")),
            status=body.get("status", "DONE"),
            method=body.get("method"),
        )

    def cancel_payment(
        self,
        order_id: str,
        payment_key: str,
        cancel_amount: int,
        order_item_ids: list[str],
        reason: str,
    ) -> CancelResult:
        body = self._post(
            f"/v1/payments/{payment_key}/cancel",
            {"cancelReason": reason or "Order cancelled", "cancelAmount": cancel_amount},
            idempotency_key=f"cancel-{order_id}",
            order_id=order_id,
        )
        cancels = body.get("cancels") or [{}]
        latest = cancels[-1]
        logger.info(
            "Toss Payments cancelled payment",
            order_id=order_id,
            cancel_amount=cancel_amount,
            item_count=len(order_item_ids),
        )
        return CancelResult(
            payment_key=payment_key,
            cancel_amount=int(latest.get("cancelAmount", cancel_amount)),
            transaction_key=latest.get("transactionKey"),
            cancelled_at=_parse_timestamp(latest.get("canceledAt")),
        )

    def close(self) -> None:
        self.client.close()
