"""Error taxonomy for the checkout workflow.

Input and state-guard violations build on Protean's ``ValidationError`` so they
carry the usual ``{"field": ["message"]}`` payload. Failures that come from
collaborators or from integrity checks derive from ``CheckoutError``.
"""

from protean.exceptions import ValidationError


class InvalidStateTransition(ValidationError):
    """A lifecycle transition was attempted from a state that does not allow it."""


class PaymentStateConflict(InvalidStateTransition):
    """The payment is in a state that conflicts with the requested operation."""


class CheckoutError(Exception):
    """Base class for workflow failures that are not input validation errors."""

    code = "CHECKOUT_ERROR"

    def __init__(self, message: str, **context) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        return self.message


class StockUnavailable(CheckoutError):
    """Inventory could not be reserved for an order item."""

    code = "STOCK_UNAVAILABLE"


class ReleaseFailed(CheckoutError):
    """A stock reservation could not be released. Never fatal for cancellation."""

    code = "RELEASE_FAILED"


class GatewayError(CheckoutError):
    """The payment processor rejected a request or could not be reached."""

    code = "GATEWAY_ERROR"


class GatewayUnavailable(GatewayError):
    """The processor timed out or answered with a server error. Safe to retry."""

    code = "GATEWAY_UNAVAILABLE"


class IntegrityError(CheckoutError):
    """Amounts reported by a caller or the processor disagree with the order."""

    code = "INTEGRITY_ERROR"


class LockTimeout(CheckoutError):
    """The per-order lock could not be acquired in time."""

    code = "LOCK_TIMEOUT"


class PaymentNotFound(CheckoutError):
    """No payment record exists for the order."""

    code = "PAYMENT_NOT_FOUND"
