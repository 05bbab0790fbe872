"""Tests for the ShoppingCart aggregate."""

import pytest
from checkout.cart.cart import CartStatus, ShoppingCart
from protean.exceptions import ValidationError


class TestCart:
    def test_needs_customer_or_session(self):
        with pytest.raises(ValidationError):
            ShoppingCart.create()

    def test_adding_same_product_merges_quantity(self):
        cart = ShoppingCart.create(session_id="sess-1")
        cart.add_item("p-1", 2)
        cart.add_item("p-1", 3)
        assert len(cart.items) == 1
        assert cart.items[0].quantity == 5

    def test_update_and_remove(self):
        cart = ShoppingCart.create(customer_id="cust-1")
        cart.add_item("p-1", 2)
        item_id = cart.items[0].id
        cart.update_item_quantity(item_id, 4)
        assert cart.items[0].quantity == 4
        cart.remove_item(item_id)
        assert cart.items == []

    def test_convert_empties_cart(self):
        cart = ShoppingCart.create(session_id="sess-1")
        cart.add_item("p-1", 1)
        cart.convert_to_order("ord-1")
        assert cart.status == CartStatus.CONVERTED.value
        assert cart.items == []
        assert str(cart.converted_order_id) == "ord-1"

    def test_converted_cart_is_frozen(self):
        cart = ShoppingCart.create(session_id="sess-1")
        cart.add_item("p-1", 1)
        cart.convert_to_order("ord-1")
        with pytest.raises(ValidationError):
            cart.add_item("p-2", 1)

    def test_cannot_convert_empty_cart(self):
        with pytest.raises(ValidationError):
            ShoppingCart.create(session_id="sess-1").convert_to_order("ord-1")
