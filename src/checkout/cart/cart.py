"""Shopping Cart aggregate (CQRS).

Holds what a signed-in customer or an anonymous session intends to buy.
Each product appears at most once; adding it again raises the quantity.
Nothing here reserves stock: the order transaction re-validates everything.
"""

import json
from datetime import UTC, datetime
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, HasMany, Identifier, Integer, String

from checkout.cart.events import CartConverted, CartItemAdded, CartItemRemoved, CartQuantityUpdated
from checkout.domain import checkout


class CartStatus(Enum):
    ACTIVE = "Active"
    CONVERTED = "Converted"


@checkout.entity(part_of="ShoppingCart")
class CartItem:
    product_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)
    added_at = DateTime()


@checkout.aggregate
class ShoppingCart:
    customer_id = Identifier()  # Null for anonymous carts
    session_id = String(max_length=255)
    items = HasMany(CartItem)
    status = String(choices=CartStatus, default=CartStatus.ACTIVE.value)
    converted_order_id = Identifier()
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def one_line_per_product(self):
        product_ids = [str(item.product_id) for item in self.items]
        if len(product_ids) != len(set(product_ids)):
            raise ValidationError({"items": ["A product can appear only once in a cart"]})

    @classmethod
    def create(cls, customer_id=None, session_id=None):
        if not customer_id and not session_id:
            raise ValidationError({"cart": ["A cart belongs to a customer or a session"]})
        now = datetime.now(UTC)
        return cls(
            customer_id=customer_id,
            session_id=session_id,
            status=CartStatus.ACTIVE.value,
            created_at=now,
            updated_at=now,
        )

    def _ensure_active(self, action):
        if CartStatus(self.status) != CartStatus.ACTIVE:
            raise ValidationError({"status": [f"Cannot {action} a cart that is no longer active"]})

    def item_for(self, product_id):
        return next((i for i in self.items if str(i.product_id) == str(product_id)), None)

    def find_item(self, item_id):
        item = next((i for i in self.items if str(i.id) == str(item_id)), None)
        if item is None:
            raise ValidationError({"item_id": ["Item not found in cart"]})
        return item

    def add_item(self, product_id, quantity):
        """Add a product, or raise its quantity if it is already in the cart."""
        self._ensure_active("add items to")
        now = datetime.now(UTC)

        existing = self.item_for(product_id)
        if existing:
            existing.quantity += quantity
            item_id = str(existing.id)
        else:
            item = CartItem(product_id=product_id, quantity=quantity, added_at=now)
            self.add_items(item)
            item_id = str(item.id)

        self.updated_at = now
        self.raise_(
            CartItemAdded(
                cart_id=str(self.id),
                item_id=item_id,
                product_id=str(product_id),
                quantity=quantity,
            )
        )

    def update_item_quantity(self, item_id, new_quantity):
        self._ensure_active("update")
        item = self.find_item(item_id)

        previous = item.quantity
        item.quantity = new_quantity
        self.updated_at = datetime.now(UTC)
        self.raise_(
            CartQuantityUpdated(
                cart_id=str(self.id),
                item_id=str(item_id),
                previous_quantity=previous,
                new_quantity=new_quantity,
            )
        )

    def remove_item(self, item_id):
        self._ensure_active("remove items from")
        item = self.find_item(item_id)
        self.remove_items(item)
        self.updated_at = datetime.now(UTC)
        self.raise_(CartItemRemoved(cart_id=str(self.id), item_id=str(item_id)))

    def lines(self) -> list[dict]:
        return [{"product_id": str(i.product_id), "quantity": i.quantity} for i in self.items]

    def convert_to_order(self, order_id):
        """Empty the cart into an order."""
        self._ensure_active("convert")
        if not self.items:
            raise ValidationError({"cart": ["Cannot check out an empty cart"]})

        snapshot = self.lines()
        for item in list(self.items):
            self.remove_items(item)

        self.status = CartStatus.CONVERTED.value
        self.converted_order_id = order_id
        self.updated_at = datetime.now(UTC)
        self.raise_(
            CartConverted(
                cart_id=str(self.id),
                order_id=str(order_id),
                items=json.dumps(snapshot),
            )
        )
