"""Cart management: commands and handler.

Every change that raises a quantity runs the advisory stock check so the
customer hears about shortages while shopping rather than at checkout.
"""

from protean import handle
from protean.fields import Identifier, Integer, String
from protean.utils.globals import current_domain

from checkout.cart.cart import ShoppingCart
from checkout.cart.validator import CartValidator
from checkout.domain import checkout
from checkout.inventory.accessor import InventoryAccessor


@checkout.command(part_of="ShoppingCart")
class CreateCart:
    customer_id = Identifier()
    session_id = String(max_length=255)


@checkout.command(part_of="ShoppingCart")
class AddToCart:
    cart_id = Identifier(required=True)
    product_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)


@checkout.command(part_of="ShoppingCart")
class UpdateCartQuantity:
    cart_id = Identifier(required=True)
    item_id = Identifier(required=True)
    new_quantity = Integer(required=True, min_value=1)


@checkout.command(part_of="ShoppingCart")
class RemoveFromCart:
    cart_id = Identifier(required=True)
    item_id = Identifier(required=True)


@checkout.command_handler(part_of=ShoppingCart)
class ManageCartHandler:
    @handle(CreateCart)
    def create_cart(self, command):
        cart = ShoppingCart.create(customer_id=command.customer_id, session_id=command.session_id)
        current_domain.repository_for(ShoppingCart).add(cart)
        return str(cart.id)

    @handle(AddToCart)
    def add_to_cart(self, command):
        repo = current_domain.repository_for(ShoppingCart)
        cart = repo.get(command.cart_id)

        accessor = InventoryAccessor()
        product = accessor.get(command.product_id)
        existing = cart.item_for(product.id)
        total = command.quantity + (existing.quantity if existing else 0)
        CartValidator(accessor).check_availability(product, total)

        cart.add_item(product_id=str(product.id), quantity=command.quantity)
        repo.add(cart)

    @handle(UpdateCartQuantity)
    def update_cart_quantity(self, command):
        repo = current_domain.repository_for(ShoppingCart)
        cart = repo.get(command.cart_id)
        item = cart.find_item(command.item_id)

        accessor = InventoryAccessor()
        CartValidator(accessor).check_availability(accessor.get(item.product_id), command.new_quantity)

        cart.update_item_quantity(item_id=command.item_id, new_quantity=command.new_quantity)
        repo.add(cart)

    @handle(RemoveFromCart)
    def remove_from_cart(self, command):
        repo = current_domain.repository_for(ShoppingCart)
        cart = repo.get(command.cart_id)
        cart.remove_item(item_id=command.item_id)
        repo.add(cart)
