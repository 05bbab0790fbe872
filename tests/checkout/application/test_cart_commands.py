"""Tests for cart commands and the advisory stock check behind them."""

import pytest
from checkout.cart.cart import ShoppingCart
from checkout.cart.items import AddToCart, CreateCart, RemoveFromCart, UpdateCartQuantity
from checkout.cart.validator import CartValidator
from checkout.exceptions import InsufficientStockError
from checkout.inventory.accessor import InventoryAccessor
from protean.utils.globals import current_domain


def _create_cart(customer_id="cust-001"):
    return current_domain.process(CreateCart(customer_id=customer_id), asynchronous=False)


def _add(cart_id, product_id, quantity):
    current_domain.process(AddToCart(cart_id=cart_id, product_id=product_id, quantity=quantity), asynchronous=False)


def _cart(cart_id):
    return current_domain.repository_for(ShoppingCart).get(cart_id)


@pytest.fixture()
def bundle(register_product):
    vitamin_a = register_product("VIT-A", name="A", quantity=5)
    vitamin_b = register_product("VIT-B", name="B", quantity=10)
    bundle_id = register_product("PACK-AB", name="Pack", components=[(vitamin_a, 2), (vitamin_b, 1)])
    return {"a": vitamin_a, "b": vitamin_b, "bundle": bundle_id}


class TestBundleAvailability:
    def test_three_bundles_need_six_of_a(self, bundle):
        cart_id = _create_cart()
        with pytest.raises(InsufficientStockError) as exc:
            _add(cart_id, bundle["bundle"], 3)

        assert str(exc.value) == "insufficient stock for A"
        assert exc.value.requested == 6
        assert exc.value.available == 5
        assert _cart(cart_id).items == []

    def test_two_bundles_fit(self, bundle):
        cart_id = _create_cart()
        _add(cart_id, bundle["bundle"], 2)
        assert _cart(cart_id).items[0].quantity == 2

    def test_bundle_and_component_share_one_counter(self, bundle):
        accessor = InventoryAccessor()
        lines = [(accessor.get(bundle["bundle"]), 2), (accessor.get(bundle["a"]), 2)]
        with pytest.raises(InsufficientStockError) as exc:
            CartValidator(accessor).validate_lines(lines)
        assert str(exc.value) == "insufficient stock for A"

    def test_validation_reserves_nothing(self, bundle):
        accessor = InventoryAccessor()
        CartValidator(accessor).validate_lines([(accessor.get(bundle["bundle"]), 2)])
        assert accessor.get(bundle["a"]).quantity == 5


class TestCartItems:
    def test_adding_same_product_merges_quantity(self, register_product):
        product_id = register_product("OMEGA-3", quantity=10)
        cart_id = _create_cart()
        _add(cart_id, product_id, 2)
        _add(cart_id, product_id, 3)

        cart = _cart(cart_id)
        assert len(cart.items) == 1
        assert cart.items[0].quantity == 5

    def test_merged_quantity_is_checked(self, register_product):
        product_id = register_product("OMEGA-3", name="Omega-3", quantity=4)
        cart_id = _create_cart()
        _add(cart_id, product_id, 3)
        with pytest.raises(InsufficientStockError):
            _add(cart_id, product_id, 2)
        assert _cart(cart_id).items[0].quantity == 3

    def test_update_quantity_checks_stock(self, register_product):
        product_id = register_product("OMEGA-3", quantity=4)
        cart_id = _create_cart()
        _add(cart_id, product_id, 1)
        item_id = str(_cart(cart_id).items[0].id)

        current_domain.process(
            UpdateCartQuantity(cart_id=cart_id, item_id=item_id, new_quantity=4), asynchronous=False
        )
        assert _cart(cart_id).items[0].quantity == 4

        with pytest.raises(InsufficientStockError):
            current_domain.process(
                UpdateCartQuantity(cart_id=cart_id, item_id=item_id, new_quantity=5), asynchronous=False
            )

    def test_remove_item(self, register_product):
        product_id = register_product("OMEGA-3")
        cart_id = _create_cart()
        _add(cart_id, product_id, 1)
        item_id = str(_cart(cart_id).items[0].id)

        current_domain.process(RemoveFromCart(cart_id=cart_id, item_id=item_id), asynchronous=False)
        assert _cart(cart_id).items == []

    def test_untracked_product_never_short(self, register_product):
        product_id = register_product("GIFT-CARD", quantity=0, track_quantity=False)
        cart_id = _create_cart()
        _add(cart_id, product_id, 50)
        assert _cart(cart_id).items[0].quantity == 50
