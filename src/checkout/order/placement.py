"""Order placement: command and handler (createOrder).

Everything happens inside the command handler's Unit of Work: re-validating
stock, pricing from the live catalog, inserting the order and its lines,
taking stock with guarded decrements and emptying the cart. Any exception
rolls the whole unit back, so a failed checkout leaves no order behind and
no counter changed. No payment provider is contacted here.
"""

import json
from collections import OrderedDict

import structlog
from protean import handle
from protean.exceptions import ExpectedVersionError, ValidationError
from protean.fields import Float, Identifier, String, Text
from protean.utils.globals import current_domain

from checkout.cart.cart import ShoppingCart
from checkout.cart.validator import CartValidator
from checkout.config import get_settings
from checkout.domain import checkout
from checkout.exceptions import ConflictError, InsufficientStockError
from checkout.inventory.accessor import InventoryAccessor
from checkout.order.numbering import generate_order_number
from checkout.order.order import Order
from checkout.order.pricing import line_total, price_order

logger = structlog.get_logger(__name__)

_ADDRESS_FIELDS = {
    "first_name",
    "last_name",
    "company",
    "street",
    "city",
    "state",
    "postal_code",
    "country",
}


@checkout.command(part_of="Order")
class PlaceOrder:
    """Turn a cart (or an anonymous session's lines) into an order.

    Exactly one of ``cart_id`` or ``lines`` is used; ``lines`` is a JSON list
    of ``{"product_id", "quantity"}``. Prices sent by clients are ignored.
    """

    cart_id = Identifier()
    lines = Text()
    customer_id = Identifier()
    session_id = String(max_length=255)
    email = String(required=True, max_length=255)
    phone = String(max_length=50)
    billing_address = Text(required=True)  # JSON
    shipping_address = Text()  # JSON; defaults to the billing address
    notes = Text()
    discount_amount = Float(default=0.0, min_value=0.0)


def _parse_address(raw, field_name):
    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        raise ValidationError({field_name: ["Address must be a JSON object"]})
    if not isinstance(data, dict):
        raise ValidationError({field_name: ["Address must be a JSON object"]})
    return {key: value for key, value in data.items() if key in _ADDRESS_FIELDS}


def _parse_lines(raw) -> list[dict]:
    try:
        entries = json.loads(raw)
    except (TypeError, ValueError):
        raise ValidationError({"lines": ["Lines must be a JSON list"]})
    if not isinstance(entries, list):
        raise ValidationError({"lines": ["Lines must be a JSON list"]})

    merged: OrderedDict[str, int] = OrderedDict()
    for entry in entries:
        product_id = str(entry.get("product_id") or "")
        quantity = entry.get("quantity")
        if not product_id:
            raise ValidationError({"lines": ["Every line needs a product_id"]})
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
            raise ValidationError({"lines": [f"Quantity for {product_id} must be a whole number of at least 1"]})
        merged[product_id] = merged.get(product_id, 0) + quantity
    return [{"product_id": product_id, "quantity": quantity} for product_id, quantity in merged.items()]


def _allocate_order_number(repo, prefix, attempts):
    """Draw order numbers until one is unused. Exhausting the attempts is a conflict, never an overwrite."""
    for attempt in range(1, attempts + 1):
        candidate = generate_order_number(prefix)
        if not repo._dao.query.filter(order_number=candidate).all().items:
            return candidate
        logger.warning("Order number collision", order_number=candidate, attempt=attempt)
    raise ConflictError(
        "Could not allocate a unique order number, please retry",
        details={"attempts": attempts},
    )


@checkout.command_handler(part_of=Order)
class PlaceOrderHandler:
    @handle(PlaceOrder)
    def place_order(self, command):
        settings = get_settings()
        order_repo = current_domain.repository_for(Order)
        cart_repo = current_domain.repository_for(ShoppingCart)

        cart = None
        if command.cart_id:
            cart = cart_repo.get(command.cart_id)
            requested = cart.lines()
        elif command.lines:
            requested = _parse_lines(command.lines)
        else:
            raise ValidationError({"lines": ["An order needs a cart or a list of lines"]})
        if not requested:
            raise ValidationError({"cart": ["Cannot check out an empty cart"]})

        billing = _parse_address(command.billing_address, "billing_address")
        shipping = _parse_address(command.shipping_address, "shipping_address") if command.shipping_address else None

        # 1. Re-resolve every product and re-validate against current stock
        accessor = InventoryAccessor()
        resolved = [(accessor.get(line["product_id"]), line["quantity"]) for line in requested]
        needed = CartValidator(accessor).validate_lines(resolved)

        # 2. Authoritative prices and totals
        lines_data = []
        for product, quantity in resolved:
            lines_data.append(
                {
                    "product_id": str(product.id),
                    "product_name": product.name,
                    "product_sku": product.sku,
                    "product_image": product.image_url,
                    "is_bundle": product.is_bundle,
                    "quantity": quantity,
                    "unit_price": product.price,
                    "line_total": line_total(product.price, quantity),
                    "stock_allocation": dict(accessor.requirements(product, quantity)),
                }
            )
        pricing = price_order(lines_data, discount=command.discount_amount or 0.0, settings=settings)

        # 3. Order number
        order_number = _allocate_order_number(
            order_repo, settings.order_number_prefix, settings.order_number_max_attempts
        )

        # 4. Order, lines, stock and cart in one unit
        order = Order.place(
            order_number=order_number,
            email=command.email,
            phone=command.phone,
            customer_id=command.customer_id or (cart.customer_id if cart else None),
            session_id=command.session_id or (cart.session_id if cart else None),
            cart_id=str(cart.id) if cart else None,
            billing_address=billing,
            shipping_address=shipping,
            lines_data=lines_data,
            pricing=pricing,
            notes=command.notes,
        )

        names = {}
        for product, _ in resolved:
            names[str(product.id)] = product.name
            if product.is_bundle:
                names.update({str(c.id): c.name for c, _ in accessor.components_of(product)})
        try:
            for product_id, quantity in needed.items():
                if not accessor.decrement_if_available(product_id, quantity):
                    raise InsufficientStockError(names.get(product_id, product_id), quantity)
        except ExpectedVersionError as exc:
            # Another order wrote the counter after it was read here
            logger.warning("Stock changed by a concurrent order", order_number=order_number)
            raise ConflictError(
                "Stock changed while the order was being placed, please retry",
                details={"retryable": True},
            ) from exc

        if cart is not None:
            cart.convert_to_order(order.id)
            cart_repo.add(cart)

        order_repo.add(order)

        logger.info(
            "Order placed",
            order_id=str(order.id),
            order_number=order_number,
            total_amount=pricing["total_amount"],
            line_count=len(lines_data),
        )
        return {"order_id": str(order.id), "order_number": order_number}
