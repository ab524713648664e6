"""Stock reservation client for the product service's internal HTTP API."""

from datetime import datetime

import httpx
import structlog

from ordering.errors import ReleaseFailed, StockUnavailable
from ordering.stock.port import ReservationToken, StockReservationClient

logger = structlog.get_logger(__name__)


class HttpStockClient(StockReservationClient):
    """Talks to ``/internal/products/stock`` on the product service."""

    def __init__(self, base_url: str, timeout: float = 10.0, client: httpx.Client | None = None) -> None:
        self.client = client or httpx.Client(base_url=base_url, timeout=timeout)

    def reserve(
        self,
        product_id: str,
        variant_id: str | None,
        quantity: int,
        order_id: str,
    ) -> ReservationToken:
        payload = {
            "orderId": str(order_id),
            "items": [{"productId": str(product_id), "variantId": variant_id, "quantity": quantity}],
        }
        try:
            response = self.client.post("/internal/products/stock/reserve", json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "Stock reservation rejected",
                product_id=str(product_id),
                order_id=str(order_id),
                status_code=exc.response.status_code,
            )
            raise StockUnavailable(
                f"Stock reservation rejected for product {product_id}",
                product_id=str(product_id),
                variant_id=variant_id,
                requested=quantity,
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise StockUnavailable(
                f"Stock service unreachable while reserving product {product_id}",
                product_id=str(product_id),
                variant_id=variant_id,
                requested=quantity,
            ) from exc

        body = response.json()
        expires_at = body.get("expiresAt")
        return ReservationToken(
            token=body["reservationToken"],
            product_id=str(product_id),
            variant_id=variant_id,
            quantity=quantity,
            expires_at=datetime.fromisoformat(expires_at) if expires_at else None,
        )

    def release(self, token: str) -> None:
        try:
            response = self.client.post("/internal/products/stock/release", json={"reservationToken": token})
            if response.status_code == 404:
                return
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise ReleaseFailed(f"Could not release reservation {token}", token=token) from exc

    def close(self) -> None:
        self.client.close()
