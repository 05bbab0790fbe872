"""Inventory Accessor: reads and moves stock counters for simple and bundle products.

Callers work in terms of the product they sell; the accessor resolves a
bundle into its components so stock only ever moves on simple products.
All writes go through the current Unit of Work when one is active, so an
order that fails halfway leaves every counter as it was.
"""

from collections import OrderedDict

import structlog
from protean.exceptions import ValidationError
from protean.utils.globals import current_domain

from checkout.inventory.product import Product

logger = structlog.get_logger(__name__)


class InventoryAccessor:
    def __init__(self, repository=None):
        self._repository = repository

    @property
    def repository(self):
        if self._repository is None:
            self._repository = current_domain.repository_for(Product)
        return self._repository

    def get(self, product_id) -> Product:
        return self.repository.get(str(product_id))

    def components_of(self, bundle: Product) -> list[tuple[Product, int]]:
        """Resolve a bundle's components in their catalog order.

        Bundles of bundles are rejected outright rather than recursed into.
        """
        resolved = []
        for component in bundle.ordered_components:
            product = self.get(component.component_product_id)
            if product.is_bundle:
                raise ValidationError(
                    {"product": [f"Bundle {bundle.name} contains another bundle ({product.name}), which is not supported"]}
                )
            resolved.append((product, component.quantity))
        return resolved

    def available_quantity(self, product: Product) -> int | None:
        """Units that can be sold right now. None means stock is not tracked."""
        if not product.is_bundle:
            return product.quantity if product.track_quantity else None

        limits = [
            component.quantity // per_bundle
            for component, per_bundle in self.component_demand(product, 1)
            if component.track_quantity
        ]
        return min(limits) if limits else None

    def requirements(self, product: Product, quantity: int) -> "OrderedDict[str, int]":
        """Units each simple product must give up to sell ``quantity`` of ``product``."""
        needed: OrderedDict[str, int] = OrderedDict()
        if product.is_bundle:
            for component, per_bundle in self.components_of(product):
                key = str(component.id)
                needed[key] = needed.get(key, 0) + per_bundle * quantity
        else:
            needed[str(product.id)] = quantity
        return needed

    def component_demand(self, bundle: Product, quantity: int) -> list[tuple[Product, int]]:
        """Each distinct component of ``bundle``, loaded once, with the units ``quantity`` bundles take."""
        return [(self.get(product_id), needed) for product_id, needed in self.requirements(bundle, quantity).items()]

    def decrement_if_available(self, product_id, quantity: int) -> bool:
        """Guarded decrement: take ``quantity`` only if no counter would drop below zero.

        For a bundle every component is checked before any of them is touched.
        """
        product = self.get(product_id)
        if not product.is_bundle:
            taken = product.decrement_if_available(quantity)
            if taken:
                self.repository.add(product)
            else:
                logger.info(
                    "Stock decrement refused",
                    product_id=str(product.id),
                    requested=quantity,
                    available=product.quantity,
                )
            return taken

        components = self.component_demand(product, quantity)
        for component, needed in components:
            if component.track_quantity and component.quantity < needed:
                logger.info(
                    "Bundle stock decrement refused",
                    bundle_id=str(product.id),
                    component_id=str(component.id),
                    requested=needed,
                    available=component.quantity,
                )
                return False

        for component, needed in components:
            component.decrement_if_available(needed)
            self.repository.add(component)
        return True

    def increment(self, product_id, quantity: int) -> None:
        product = self.get(product_id)
        if product.is_bundle:
            for component, needed in self.component_demand(product, quantity):
                component.increment(needed)
                self.repository.add(component)
            return

        product.increment(quantity)
        self.repository.add(product)
