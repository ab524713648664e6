"""Payment gateway factory.

Provides get_gateway() / set_gateway() to swap implementations:
- FakeGateway for development and testing
- TossGateway when PAYMENT_GATEWAY=toss
"""

from ordering.config import get_settings
from ordering.gateway.fake_adapter import FakeGateway
from ordering.gateway.port import PaymentGateway
from ordering.gateway.toss_adapter import TossGateway

_current_gateway: PaymentGateway | None = None


def _build_default() -> PaymentGateway:
    settings = get_settings()
    if settings.gateway == "toss":
        return TossGateway(
            secret_key=settings.toss_secret_key,
            client_key=settings.toss_client_key,
            success_url=settings.toss_success_url,
            fail_url=settings.toss_fail_url,
            base_url=settings.toss_api_url,
            timeout=settings.http_timeout_seconds,
        )
    return FakeGateway()


def get_gateway() -> PaymentGateway:
    """Return the current payment gateway. Defaults to FakeGateway."""
    global _current_gateway
    if _current_gateway is None:
        _current_gateway = _build_default()
    return _current_gateway


def set_gateway(gateway: PaymentGateway) -> None:
    """Override the active payment gateway (useful for tests)."""
    global _current_gateway
    _current_gateway = gateway


def reset_gateway() -> None:
    """Reset to default gateway."""
    global _current_gateway
    _current_gateway = None
