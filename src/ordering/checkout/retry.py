"""Bounded retry for calls to external collaborators.

Only failures that are safe to repeat go through here: stock releases and
payment processor calls carrying an idempotency key. Reservations are never
retried.
"""

import random
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

import structlog

from ordering.config import CheckoutSettings

logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    attempts: int = 3
    backoff_seconds: float = 0.2
    multiplier: float = 2.0
    jitter: float = 0.1

    def __post_init__(self) -> None:
        if self.attempts < 1:
            raise ValueError(f"attempts must be >= 1, got {self.attempts}")
        if self.backoff_seconds < 0:
            raise ValueError(f"backoff_seconds must be >= 0, got {self.backoff_seconds}")

    @classmethod
    def from_settings(cls, settings: CheckoutSettings) -> "RetryPolicy":
        return cls(attempts=settings.retry_attempts, backoff_seconds=settings.retry_backoff_seconds)

    def delay_for(self, attempt: int) -> float:
        """Delay before the retry that follows ``attempt`` (1-based)."""
        delay = self.backoff_seconds * (self.multiplier ** (attempt - 1))
        return delay + delay * self.jitter * random.random()


def call_with_retry(
    fn: Callable[..., T],
    *args,
    policy: RetryPolicy,
    retry_on: tuple[type[Exception], ...],
    operation: str,
    **kwargs,
) -> T:
    """Call ``fn`` until it succeeds or ``policy.attempts`` is exhausted.

    Exceptions outside ``retry_on`` propagate immediately. After the last
    attempt the final exception is re-raised unchanged.
    """
    for attempt in range(1, policy.attempts + 1):
        try:
            return fn(*args, **kwargs)
        except retry_on as exc:
            if attempt == policy.attempts:
                logger.error(
                    "Retries exhausted",
                    operation=operation,
                    attempts=attempt,
                    error=str(exc),
                )
                raise
            delay = policy.delay_for(attempt)
            logger.warning(
                "Retrying after failure",
                operation=operation,
                attempt=attempt,
                delay_seconds=round(delay, 3),
                error=str(exc),
            )
            if delay > 0:
                time.sleep(delay)

    raise AssertionError("unreachable")  # pragma: no cover
