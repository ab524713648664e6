"""Ordering domain API package."""

from ordering.api.errors import register_checkout_exception_handlers
from ordering.api.routes import cart_router, maintenance_router, order_router

__all__ = ["cart_router", "maintenance_router", "order_router", "register_checkout_exception_handlers"]
