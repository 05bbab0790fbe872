"""Order pricing: subtotal from catalog prices, flat-fee shipping with a free threshold."""

from decimal import ROUND_HALF_UP, Decimal

from protean.exceptions import ValidationError

from checkout.config import Settings, get_settings

_CENT = Decimal("0.01")


def _money(value) -> Decimal:
    return Decimal(str(value)).quantize(_CENT, rounding=ROUND_HALF_UP)


def line_total(unit_price: float, quantity: int) -> float:
    return float(_money(_money(unit_price) * quantity))


def calculate_shipping(subtotal: float, settings: Settings | None = None) -> float:
    """Flat fee below the free-shipping threshold, nothing at or above it."""
    settings = settings or get_settings()
    if _money(subtotal) >= _money(settings.free_shipping_threshold):
        return 0.0
    return float(_money(settings.shipping_flat_fee))


def price_order(lines: list[dict], discount: float = 0.0, settings: Settings | None = None) -> dict:
    """Total an order from its resolved lines (each with ``unit_price`` and ``quantity``).

    ``total = subtotal + shipping - discount``; the discount can never exceed
    the subtotal.
    """
    settings = settings or get_settings()

    subtotal = sum((_money(line["unit_price"]) * line["quantity"] for line in lines), Decimal("0"))
    subtotal = _money(subtotal)
    discount_amount = _money(discount or 0)
    if discount_amount < 0:
        raise ValidationError({"discount_amount": ["Discount cannot be negative"]})
    if discount_amount > subtotal:
        raise ValidationError({"discount_amount": ["Discount cannot exceed the order subtotal"]})

    shipping = _money(calculate_shipping(float(subtotal), settings))
    total = subtotal + shipping - discount_amount

    return {
        "subtotal": float(subtotal),
        "shipping_amount": float(shipping),
        "discount_amount": float(discount_amount),
        "total_amount": float(_money(total)),
        "currency": settings.currency,
    }
