"""Cart Validator: advisory availability checks against current stock.

Passing here reserves nothing. Stock can move between a check and the
order commit, so order placement runs the same checks again inside its
transaction and then takes stock with a guarded decrement.
"""

from collections import OrderedDict

from checkout.exceptions import InsufficientStockError
from checkout.inventory.accessor import InventoryAccessor
from checkout.inventory.product import Product


class CartValidator:
    def __init__(self, accessor: InventoryAccessor | None = None):
        self.accessor = accessor or InventoryAccessor()

    def check_availability(self, product: Product, requested_quantity: int) -> None:
        """Raise InsufficientStockError naming the product that falls short.

        For a bundle the offending product is the component, since that is
        what actually ran out.
        """
        if not product.is_bundle:
            if product.track_quantity and requested_quantity > product.quantity:
                raise InsufficientStockError(product.name, requested_quantity, product.quantity)
            return

        for component, required in self.accessor.component_demand(product, requested_quantity):
            if component.track_quantity and required > component.quantity:
                raise InsufficientStockError(component.name, required, component.quantity)

    def validate_lines(self, lines: list[tuple[Product, int]]) -> "OrderedDict[str, int]":
        """Check a whole cart, summing what every line needs from each simple product.

        A bundle and one of its own components in the same cart draw on one
        counter, so the sum is what has to fit. Returns the summed
        requirements keyed by simple product id.
        """
        needed: OrderedDict[str, int] = OrderedDict()
        products: dict[str, Product] = {}

        for product, quantity in lines:
            self.check_availability(product, quantity)
            if product.is_bundle:
                for component, per_bundle in self.accessor.components_of(product):
                    key = str(component.id)
                    products[key] = component
                    needed[key] = needed.get(key, 0) + per_bundle * quantity
            else:
                key = str(product.id)
                products[key] = product
                needed[key] = needed.get(key, 0) + quantity

        for product_id, quantity in needed.items():
            product = products[product_id]
            if product.track_quantity and quantity > product.quantity:
                raise InsufficientStockError(product.name, quantity, product.quantity)

        return needed
