"""Product aggregate (CQRS): price, stock counter and bundle composition.

The catalog itself is managed elsewhere; this aggregate holds the subset of
product data the checkout needs at purchase time (name, SKU, image, price)
and the authoritative stock counter.

A bundle's own ``quantity`` is never consulted. Its availability is derived
from its components, which must all be simple products.
"""

from datetime import UTC, datetime

from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, HasMany, Identifier, Integer, String

from checkout.domain import checkout
from checkout.inventory.events import (
    ProductPriceChanged,
    ProductRegistered,
    StockDecremented,
    StockIncremented,
)


@checkout.entity(part_of="Product")
class BundleComponent:
    """One component of a bundle: how many units of a product one bundle unit consumes."""

    component_product_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)
    position = Integer(default=0)


@checkout.aggregate
class Product:
    sku = String(max_length=100, required=True, unique=True)
    name = String(max_length=255, required=True)
    price = Float(required=True, min_value=0.0)
    image_url = String(max_length=1000)
    track_quantity = Boolean(default=True)
    quantity = Integer(default=0, min_value=0)
    is_bundle = Boolean(default=False)
    components = HasMany(BundleComponent)
    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def register(
        cls,
        sku,
        name,
        price,
        quantity=0,
        track_quantity=True,
        image_url=None,
        components=None,
    ):
        """Register a product. ``components`` is a list of (product_id, per_bundle_quantity) pairs."""
        now = datetime.now(UTC)
        is_bundle = bool(components)
        product = cls(
            sku=sku,
            name=name,
            price=price,
            image_url=image_url,
            track_quantity=track_quantity,
            quantity=0 if is_bundle else quantity,
            is_bundle=is_bundle,
            created_at=now,
            updated_at=now,
        )
        for position, (component_id, per_bundle) in enumerate(components or []):
            if str(component_id) == str(product.id):
                raise ValidationError({"components": ["A bundle cannot contain itself"]})
            product.add_components(
                BundleComponent(
                    component_product_id=component_id,
                    quantity=per_bundle,
                    position=position,
                )
            )

        product.raise_(
            ProductRegistered(
                product_id=str(product.id),
                sku=sku,
                name=name,
                price=price,
                is_bundle=is_bundle,
                registered_at=now,
            )
        )
        return product

    @property
    def ordered_components(self) -> list:
        return sorted(self.components, key=lambda c: c.position or 0)

    # -------------------------------------------------------------------
    # Stock counter
    # -------------------------------------------------------------------
    def decrement_if_available(self, quantity: int) -> bool:
        """Take ``quantity`` units if that leaves the counter at or above zero.

        Returns False, and leaves the counter untouched, when it would not.
        Untracked products always succeed without changing anything.
        """
        if quantity <= 0:
            raise ValidationError({"quantity": ["Quantity must be positive"]})
        if self.is_bundle:
            raise ValidationError({"product": ["Bundle stock is held by its components"]})
        if not self.track_quantity:
            return True

        previous = self.quantity or 0
        if previous - quantity < 0:
            return False

        self.quantity = previous - quantity
        self.updated_at = datetime.now(UTC)
        self.raise_(
            StockDecremented(
                product_id=str(self.id),
                quantity=quantity,
                previous_quantity=previous,
                new_quantity=self.quantity,
            )
        )
        return True

    def increment(self, quantity: int) -> None:
        if quantity <= 0:
            raise ValidationError({"quantity": ["Quantity must be positive"]})
        if self.is_bundle:
            raise ValidationError({"product": ["Bundle stock is held by its components"]})
        if not self.track_quantity:
            return

        previous = self.quantity or 0
        self.quantity = previous + quantity
        self.updated_at = datetime.now(UTC)
        self.raise_(
            StockIncremented(
                product_id=str(self.id),
                quantity=quantity,
                previous_quantity=previous,
                new_quantity=self.quantity,
            )
        )

    def change_price(self, new_price: float) -> None:
        if new_price < 0:
            raise ValidationError({"price": ["Price cannot be negative"]})
        previous = self.price
        now = datetime.now(UTC)
        self.price = new_price
        self.updated_at = now
        self.raise_(
            ProductPriceChanged(
                product_id=str(self.id),
                previous_price=previous,
                new_price=new_price,
                changed_at=now,
            )
        )
