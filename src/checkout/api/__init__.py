"""Checkout HTTP API package."""

from checkout.api.carts import cart_router
from checkout.api.errors import register_exception_handlers
from checkout.api.orders import order_router
from checkout.api.payments import payment_router

__all__ = ["cart_router", "order_router", "payment_router", "register_exception_handlers"]
