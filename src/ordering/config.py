"""Checkout workflow settings, read from the environment.

Protean's own configuration (databases, brokers, event store) lives in
``domain.toml`` next to the domain. These settings cover the workflow policy
and the external collaborators.
"""

import os
from dataclasses import dataclass
from datetime import timedelta


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value not in (None, "") else default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value not in (None, "") else default


@dataclass(frozen=True)
class CheckoutSettings:
    cancel_grace_period: timedelta = timedelta(hours=24)
    payment_ttl: timedelta = timedelta(minutes=30)
    reservation_ttl: timedelta = timedelta(minutes=15)
    retry_attempts: int = 3
    retry_backoff_seconds: float = 0.2
    lock_timeout_seconds: float = 5.0
    stock_client: str = "memory"  # memory | http
    stock_service_url: str = "http://localhost:8081"
    http_timeout_seconds: float = 10.0
    gateway: str = "fake"  # fake | toss
    pg_provider: str = "TOSS"
    toss_api_url: str = "https://api.tosspayments.com"
    toss_client_key: str = ""
    toss_secret_key: str = ""
    toss_success_url: str = "http://localhost:8000/payments/success"
    toss_fail_url: str = "http://localhost:8000/payments/fail"

    @classmethod
    def from_env(cls) -> "CheckoutSettings":
        return cls(
            cancel_grace_period=timedelta(minutes=_env_int("CHECKOUT_CANCEL_GRACE_MINUTES", 24 * 60)),
            payment_ttl=timedelta(minutes=_env_int("CHECKOUT_PAYMENT_TTL_MINUTES", 30)),
            reservation_ttl=timedelta(minutes=_env_int("CHECKOUT_RESERVATION_TTL_MINUTES", 15)),
            retry_attempts=_env_int("CHECKOUT_RETRY_ATTEMPTS", 3),
            retry_backoff_seconds=_env_float("CHECKOUT_RETRY_BACKOFF_SECONDS", 0.2),
            lock_timeout_seconds=_env_float("CHECKOUT_LOCK_TIMEOUT_SECONDS", 5.0),
            stock_client=os.getenv("STOCK_CLIENT", cls.stock_client).lower(),
            stock_service_url=os.getenv("STOCK_SERVICE_URL", cls.stock_service_url),
            http_timeout_seconds=_env_float("HTTP_TIMEOUT_SECONDS", 10.0),
            gateway=os.getenv("PAYMENT_GATEWAY", cls.gateway).lower(),
            pg_provider=os.getenv("PAYMENT_PG_PROVIDER", cls.pg_provider),
            toss_api_url=os.getenv("TOSS_API_URL", cls.toss_api_url),
            toss_client_key=os.getenv("TOSS_CLIENT_KEY", ""),
            toss_secret_key=os.getenv("TOSS_SECRET_KEY", ""),
            toss_success_url=os.getenv("TOSS_SUCCESS_URL", cls.toss_success_url),
            toss_fail_url=os.getenv("TOSS_FAIL_URL", cls.toss_fail_url),
        )


_settings: CheckoutSettings | None = None


def get_settings() -> CheckoutSettings:
    """Return the active settings, loading them from the environment on first use."""
    global _settings
    if _settings is None:
        _settings = CheckoutSettings.from_env()
    return _settings


def set_settings(settings: CheckoutSettings) -> None:
    """Override the active settings (useful for tests)."""
    global _settings
    _settings = settings


def reset_settings() -> None:
    global _settings
    _settings = None
