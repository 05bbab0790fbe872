"""Order-confirmation message, built entirely from the order's own snapshot.

Names, SKUs and prices come from the order lines as they were at checkout;
the catalog is never consulted, so a later price change or a renamed product
cannot alter what the customer is told they bought.
"""

import json

import structlog
from protean.utils.globals import current_domain

from checkout.config import get_settings
from checkout.notification.notification import Notification, NotificationKind
from checkout.order.order import Order

logger = structlog.get_logger(__name__)


def order_confirmation_key(order_id) -> str:
    return f"order-confirmation:{order_id}"


def build_order_confirmation(order: Order) -> dict:
    """Fully resolved payload for the order-confirmation email."""
    pricing = order.pricing
    return {
        "order_id": str(order.id),
        "order_number": order.order_number,
        "email": order.email,
        "customer_name": f"{order.billing_address.first_name} {order.billing_address.last_name}",
        "lines": [line.to_dict() for line in order.ordered_lines],
        "shipping_address": order.shipping_address.to_dict(),
        "billing_address": order.billing_address.to_dict(),
        "totals": {
            "subtotal": pricing.subtotal,
            "shipping": pricing.shipping_amount,
            "discount": pricing.discount_amount,
            "total": pricing.total_amount,
            "currency": pricing.currency,
        },
    }


def _money(amount, currency) -> str:
    return f"{amount:.2f} {currency.upper()}"


def render_order_confirmation(payload: dict) -> tuple[str, str]:
    """Plain-text subject and body."""
    totals = payload["totals"]
    currency = totals["currency"]
    address = payload["shipping_address"]

    lines = [
        f"Hi {payload['customer_name']},",
        "",
        f"Thank you for your order {payload['order_number']}. We have received your payment.",
        "",
    ]
    for line in payload["lines"]:
        lines.append(
            f"  {line['quantity']} x {line['product_name']} ({line['product_sku']})"
            f"  {_money(line['line_total'], currency)}"
        )
    lines += [
        "",
        f"Subtotal: {_money(totals['subtotal'], currency)}",
        f"Shipping: {_money(totals['shipping'], currency)}",
    ]
    if totals["discount"]:
        lines.append(f"Discount: -{_money(totals['discount'], currency)}")
    lines += [
        f"Total:    {_money(totals['total'], currency)}",
        "",
        "Shipping to:",
        f"  {address['first_name']} {address['last_name']}",
        f"  {address['street']}",
        f"  {address['postal_code']} {address['city']}",
        f"  {address['country']}",
    ]
    return f"Order confirmation {payload['order_number']}", "\n".join(lines)


def queue_order_confirmation(order: Order) -> Notification | None:
    """Add the confirmation to the outbox unless this order already has one.

    Must run inside the Unit of Work that records the payment, so the row
    commits or rolls back together with it.
    """
    repo = current_domain.repository_for(Notification)
    key = order_confirmation_key(order.id)
    if repo.find_by_dedupe_key(key) is not None:
        logger.info("Order confirmation already queued", order_id=str(order.id))
        return None

    payload = build_order_confirmation(order)
    subject, body = render_order_confirmation(payload)
    notification = Notification.enqueue(
        kind=NotificationKind.ORDER_CONFIRMATION,
        order_id=order.id,
        recipient=order.email,
        dedupe_key=key,
        subject=subject,
        body=body,
        payload=json.dumps(payload),
        max_retries=get_settings().notification_max_retries,
    )
    repo.add(notification)
    logger.info("Order confirmation queued", order_id=str(order.id), notification_id=str(notification.id))
    return notification
