"""In-memory stock reservation client for development and testing.

Keeps an availability map keyed by (product_id, variant_id) and the set of
live reservations. Reservations expire after a TTL and are returned to stock
by ``expire()``, the same way the product service's expiry sweep does.
"""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from uuid import uuid4

from ordering.errors import ReleaseFailed, StockUnavailable
from ordering.stock.port import ReservationToken, StockReservationClient


@dataclass
class _Hold:
    order_id: str
    key: tuple[str, str | None]
    quantity: int
    expires_at: datetime


class InMemoryStockClient(StockReservationClient):
    """Configurable in-memory stock service."""

    def __init__(self, ttl: timedelta = timedelta(minutes=15)) -> None:
        self.ttl = ttl
        self.stock: dict[tuple[str, str | None], int] = {}
        self.reservations: dict[str, _Hold] = {}
        self.failing_products: set[str] = set()
        self.release_failures: int = 0
        self.calls: list[dict] = []

    # -------------------------------------------------------------------
    # Test configuration
    # -------------------------------------------------------------------
    def set_stock(self, product_id: str, quantity: int, variant_id: str | None = None) -> None:
        self.stock[(str(product_id), variant_id)] = quantity

    def fail_reservations_for(self, product_id: str) -> None:
        """Make every reservation of ``product_id`` fail regardless of stock."""
        self.failing_products.add(str(product_id))

    def fail_next_releases(self, count: int) -> None:
        """Make the next ``count`` release calls raise ``ReleaseFailed``."""
        self.release_failures = count

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    def available(self, product_id: str, variant_id: str | None = None) -> int:
        return self.stock.get((str(product_id), variant_id), 0)

    def held_for(self, order_id: str) -> list[str]:
        return [token for token, hold in self.reservations.items() if hold.order_id == str(order_id)]

    # -------------------------------------------------------------------
    # Port implementation
    # -------------------------------------------------------------------
    def reserve(
        self,
        product_id: str,
        variant_id: str | None,
        quantity: int,
        order_id: str,
    ) -> ReservationToken:
        self.calls.append(
            {
                "method": "reserve",
                "product_id": str(product_id),
                "variant_id": variant_id,
                "quantity": quantity,
                "order_id": str(order_id),
            }
        )

        key = (str(product_id), variant_id)
        available = self.stock.get(key, 0)
        if str(product_id) in self.failing_products or available < quantity:
            raise StockUnavailable(
                f"Insufficient stock for product {product_id}",
                product_id=str(product_id),
                variant_id=variant_id,
                requested=quantity,
                available=available,
            )

        self.stock[key] = available - quantity
        token = f"rsv_{uuid4().hex[:16]}"
        expires_at = datetime.now(UTC) + self.ttl
        self.reservations[token] = _Hold(
            order_id=str(order_id),
            key=key,
            quantity=quantity,
            expires_at=expires_at,
        )
        return ReservationToken(
            token=token,
            product_id=str(product_id),
            variant_id=variant_id,
            quantity=quantity,
            expires_at=expires_at,
        )

    def release(self, token: str) -> None:
        self.calls.append({"method": "release", "token": token})

        if self.release_failures > 0:
            self.release_failures -= 1
            raise ReleaseFailed(f"Stock service refused to release {token}", token=token)

        hold = self.reservations.pop(token, None)
        if hold is None:
            return
        self.stock[hold.key] = self.stock.get(hold.key, 0) + hold.quantity

    # -------------------------------------------------------------------
    # Expiry sweep
    # -------------------------------------------------------------------
    def expire(self, now: datetime | None = None) -> int:
        """Return stock held by reservations past their TTL. Returns the number expired."""
        now = now or datetime.now(UTC)
        expired = [token for token, hold in self.reservations.items() if hold.expires_at <= now]
        for token in expired:
            hold = self.reservations.pop(token)
            self.stock[hold.key] = self.stock.get(hold.key, 0) + hold.quantity
        return len(expired)
