"""Per-order mutual exclusion.

Every read-validate-write of an order and its payment runs while holding that
order's lock, so two requests for the same order are applied one after the
other. Locks are never held across calls to the stock service or the payment
processor. Different orders never contend.

The registry lives in process memory, so it only serializes requests served
by the same process. Across workers, a write based on a stale read is still
rejected by the aggregate version check: Protean raises ``ExpectedVersionError``
and the request fails instead of overwriting the newer state.
"""

import threading
from collections.abc import Iterator
from contextlib import contextmanager

import structlog

from ordering.config import get_settings
from ordering.errors import LockTimeout

logger = structlog.get_logger(__name__)


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.users = 0


class OrderLockRegistry:
    """Hands out one exclusive lock per order id and forgets it once unused."""

    def __init__(self, timeout: float = 5.0) -> None:
        self.timeout = timeout
        self._guard = threading.Lock()
        self._entries: dict[str, _Entry] = {}

    def _checkout(self, order_id: str) -> _Entry:
        with self._guard:
            entry = self._entries.setdefault(order_id, _Entry())
            entry.users += 1
            return entry

    def _checkin(self, order_id: str, entry: _Entry) -> None:
        with self._guard:
            entry.users -= 1
            if entry.users == 0:
                self._entries.pop(order_id, None)

    @contextmanager
    def hold(self, order_id: str, timeout: float | None = None) -> Iterator[None]:
        """Hold the lock for ``order_id`` for the duration of the block.

        Raises ``LockTimeout`` when the lock is not acquired within ``timeout``
        seconds (the registry default when omitted).
        """
        order_id = str(order_id)
        wait = self.timeout if timeout is None else timeout
        entry = self._checkout(order_id)
        try:
            if not entry.lock.acquire(timeout=wait):
                logger.warning("Order lock timed out", order_id=order_id, timeout=wait)
                raise LockTimeout(f"Timed out waiting for order {order_id}", order_id=order_id, timeout=wait)
            try:
                yield
            finally:
                entry.lock.release()
        finally:
            self._checkin(order_id, entry)

    def active(self) -> int:
        """Number of order ids that currently have a holder or waiter."""
        with self._guard:
            return len(self._entries)


_registry: OrderLockRegistry | None = None


def get_lock_registry() -> OrderLockRegistry:
    """Return the process-wide lock registry."""
    global _registry
    if _registry is None:
        _registry = OrderLockRegistry(timeout=get_settings().lock_timeout_seconds)
    return _registry


def reset_lock_registry() -> None:
    global _registry
    _registry = None
