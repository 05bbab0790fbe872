"""Domain events for the Order aggregate.

Payloads carry plain JSON for nested data so downstream consumers never need
the aggregate's value objects to read them.
"""

from protean.fields import DateTime, Float, Identifier, String, Text

from checkout.domain import checkout


@checkout.event(part_of="Order")
class OrderPlaced:
    """A cart became an order; stock for every line has been taken."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    customer_id = Identifier()
    email = String(required=True)
    lines = Text(required=True)  # JSON list of line snapshots
    subtotal = Float(required=True)
    shipping_amount = Float(required=True)
    discount_amount = Float(default=0.0)
    total_amount = Float(required=True)
    currency = String(required=True)
    placed_at = DateTime(required=True)


@checkout.event(part_of="Order")
class OrderConfirmed:
    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    confirmed_at = DateTime(required=True)


@checkout.event(part_of="Order")
class OrderProcessingStarted:
    __version__ = 1

    order_id = Identifier(required=True)
    started_at = DateTime(required=True)


@checkout.event(part_of="Order")
class OrderCancelled:
    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    reason = String(required=True)
    cancelled_by = String(required=True)
    restored_stock = Text()  # JSON {product_id: quantity}
    cancelled_at = DateTime(required=True)


@checkout.event(part_of="Order")
class OrderPaymentStatusChanged:
    __version__ = 1

    order_id = Identifier(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    changed_at = DateTime(required=True)
