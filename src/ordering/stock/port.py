"""Stock reservation port (abstract interface).

Inventory lives in another service. The ordering domain only ever holds
reservation tokens, which it hands back to release a reservation.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class ReservationToken:
    """Handle to a temporary stock hold taken for one order item."""

    token: str
    product_id: str
    variant_id: str | None
    quantity: int
    expires_at: datetime | None = None


class StockReservationClient(ABC):
    """Abstract stock reservation interface."""

    @abstractmethod
    def reserve(
        self,
        product_id: str,
        variant_id: str | None,
        quantity: int,
        order_id: str,
    ) -> ReservationToken:
        """Hold ``quantity`` units for the order, or raise ``StockUnavailable``."""
        ...

    @abstractmethod
    def release(self, token: str) -> None:
        """Return held units to available stock, or raise ``ReleaseFailed``.

        Releasing an unknown or already released token is a no-op.
        """
        ...
