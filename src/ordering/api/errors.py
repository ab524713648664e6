"""Maps checkout errors onto HTTP responses.

Protean's own handlers cover ``ValidationError`` (400) and
``ObjectNotFoundError`` (404). State conflicts are subclasses of
``ValidationError`` and get their own, more specific, 409 handler. Stale
writes rejected by the aggregate version check are also reported as 409.
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from protean.exceptions import ExpectedVersionError
from protean.integrations.fastapi import register_exception_handlers

from ordering.errors import (
    CheckoutError,
    GatewayError,
    IntegrityError,
    InvalidStateTransition,
    LockTimeout,
    PaymentNotFound,
    StockUnavailable,
)

logger = structlog.get_logger(__name__)

_STATUS_CODES = {
    StockUnavailable: 409,
    LockTimeout: 409,
    IntegrityError: 422,
    GatewayError: 502,
    PaymentNotFound: 404,
}


def _status_for(exc: CheckoutError) -> int:
    for exc_type in type(exc).__mro__:
        if exc_type in _STATUS_CODES:
            return _STATUS_CODES[exc_type]
    return 500


async def _state_conflict_handler(request: Request, exc: InvalidStateTransition) -> JSONResponse:
    return JSONResponse(status_code=409, content={"error": exc.messages})


async def _stale_write_handler(request: Request, exc: ExpectedVersionError) -> JSONResponse:
    logger.warning("Rejected write based on a stale read", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=409,
        content={"error": {"code": "CONCURRENT_MODIFICATION", "message": "The order changed while this request was in flight"}},
    )


async def _checkout_error_handler(request: Request, exc: CheckoutError) -> JSONResponse:
    status_code = _status_for(exc)
    if status_code >= 500:
        logger.error("Checkout request failed", path=request.url.path, code=exc.code, error=exc.message)
    return JSONResponse(
        status_code=status_code,
        content={"error": {"code": exc.code, "message": exc.message}},
    )


def register_checkout_exception_handlers(app: FastAPI) -> None:
    register_exception_handlers(app)
    app.add_exception_handler(InvalidStateTransition, _state_conflict_handler)
    app.add_exception_handler(ExpectedVersionError, _stale_write_handler)
    app.add_exception_handler(CheckoutError, _checkout_error_handler)
