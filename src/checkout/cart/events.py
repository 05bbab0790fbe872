"""Domain events for the ShoppingCart aggregate."""

from protean.fields import Identifier, Integer, Text

from checkout.domain import checkout


@checkout.event(part_of="ShoppingCart")
class CartItemAdded:
    __version__ = 1

    cart_id = Identifier(required=True)
    item_id = Identifier(required=True)
    product_id = Identifier(required=True)
    quantity = Integer(required=True)


@checkout.event(part_of="ShoppingCart")
class CartQuantityUpdated:
    __version__ = 1

    cart_id = Identifier(required=True)
    item_id = Identifier(required=True)
    previous_quantity = Integer(required=True)
    new_quantity = Integer(required=True)


@checkout.event(part_of="ShoppingCart")
class CartItemRemoved:
    __version__ = 1

    cart_id = Identifier(required=True)
    item_id = Identifier(required=True)


@checkout.event(part_of="ShoppingCart")
class CartConverted:
    """The cart's contents became an order; the cart is now empty."""

    __version__ = 1

    cart_id = Identifier(required=True)
    order_id = Identifier(required=True)
    items = Text(required=True)  # JSON snapshot of what was converted
