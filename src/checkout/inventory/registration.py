"""Product registration and stock administration: commands and handler.

The storefront's catalog service owns product content; these commands are the
hooks it (and seeding scripts) use to publish the purchase-relevant subset
into the checkout and to receive new stock.
"""

import json
from collections import OrderedDict

from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Boolean, Float, Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from checkout.domain import checkout
from checkout.exceptions import ConflictError
from checkout.inventory.accessor import InventoryAccessor
from checkout.inventory.product import Product


@checkout.command(part_of="Product")
class RegisterProduct:
    sku = String(required=True, max_length=100)
    name = String(required=True, max_length=255)
    price = Float(required=True, min_value=0.0)
    quantity = Integer(default=0, min_value=0)
    track_quantity = Boolean(default=True)
    image_url = String(max_length=1000)
    components = Text()  # JSON: [{"product_id": "...", "quantity": 2}, ...]


@checkout.command(part_of="Product")
class RestockProduct:
    product_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)


@checkout.command(part_of="Product")
class ChangeProductPrice:
    product_id = Identifier(required=True)
    price = Float(required=True, min_value=0.0)


@checkout.command_handler(part_of=Product)
class ProductAdministrationHandler:
    @handle(RegisterProduct)
    def register_product(self, command):
        repo = current_domain.repository_for(Product)

        existing = repo._dao.query.filter(sku=command.sku).all()
        if existing.items:
            raise ConflictError(f"SKU {command.sku} is already registered", details={"sku": command.sku})

        # The same component listed twice is one entry with the quantities summed
        merged: OrderedDict[str, int] = OrderedDict()
        for entry in json.loads(command.components) if command.components else []:
            component = repo.get(entry["product_id"])
            if component.is_bundle:
                raise ValidationError({"components": ["Bundles cannot contain other bundles"]})
            key = str(component.id)
            merged[key] = merged.get(key, 0) + int(entry["quantity"])
        components = list(merged.items())

        product = Product.register(
            sku=command.sku,
            name=command.name,
            price=command.price,
            quantity=command.quantity or 0,
            track_quantity=command.track_quantity if command.track_quantity is not None else True,
            image_url=command.image_url,
            components=components,
        )
        repo.add(product)
        return str(product.id)

    @handle(RestockProduct)
    def restock_product(self, command):
        InventoryAccessor().increment(command.product_id, command.quantity)

    @handle(ChangeProductPrice)
    def change_product_price(self, command):
        repo = current_domain.repository_for(Product)
        product = repo.get(command.product_id)
        product.change_price(command.price)
        repo.add(product)
