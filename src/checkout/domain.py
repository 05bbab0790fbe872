"""Checkout bounded context: the order and payment lifecycle engine.

Turns shopping carts into durable orders, holds product stock (including
bundles), delegates money movement to the external payment providers and
reconciles their asynchronous webhooks into one consistent order/payment
state. Order, order lines and stock are written in a single Unit of Work,
which is why all of them live in this one domain.
"""

import structlog
from protean.domain import Domain

from checkout.utils.logging import configure_logging

configure_logging()

checkout = Domain(name="checkout")

logger = structlog.get_logger(__name__)
