"""Stock reservation client factory.

Provides get_stock_client() / set_stock_client() to swap implementations:
- InMemoryStockClient for development and testing
- HttpStockClient when STOCK_CLIENT=http (talks to STOCK_SERVICE_URL)
"""

from ordering.config import get_settings
from ordering.stock.fake_adapter import InMemoryStockClient
from ordering.stock.http_adapter import HttpStockClient
from ordering.stock.port import ReservationToken, StockReservationClient

_current_client: StockReservationClient | None = None


def _build_default() -> StockReservationClient:
    settings = get_settings()
    if settings.stock_client == "http":
        return HttpStockClient(settings.stock_service_url, timeout=settings.http_timeout_seconds)
    return InMemoryStockClient(ttl=settings.reservation_ttl)


def get_stock_client() -> StockReservationClient:
    """Return the current stock client, building it from settings on first use."""
    global _current_client
    if _current_client is None:
        _current_client = _build_default()
    return _current_client


def set_stock_client(client: StockReservationClient) -> None:
    """Override the active stock client (useful for tests)."""
    global _current_client
    _current_client = client


def reset_stock_client() -> None:
    global _current_client
    _current_client = None


__all__ = [
    "HttpStockClient",
    "InMemoryStockClient",
    "ReservationToken",
    "StockReservationClient",
    "get_stock_client",
    "reset_stock_client",
    "set_stock_client",
]
