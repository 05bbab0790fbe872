"""Tests for customer-initiated order cancellation and stock restoration."""

import pytest
from checkout.inventory.product import Product
from checkout.order.cancellation import CancelOrder
from checkout.order.order import CancellationActor, Order, OrderStatus
from checkout.payment.confirmation import confirm_payment
from protean.exceptions import ValidationError
from protean.utils.globals import current_domain


def _cancel(order_id, reason="Changed my mind"):
    current_domain.process(CancelOrder(order_id=order_id, reason=reason), asynchronous=False)


def _quantity(product_id):
    return current_domain.repository_for(Product).get(product_id).quantity


class TestCancelOrder:
    def test_pending_order_cancelled_and_stock_restored(self, register_product, place_order):
        product_id = register_product("OMEGA-3", quantity=10)
        placed = place_order(lines=[(product_id, 4)])
        assert _quantity(product_id) == 6

        _cancel(placed["order_id"])

        order = current_domain.repository_for(Order).get(placed["order_id"])
        assert order.status == OrderStatus.CANCELLED.value
        assert order.cancellation_reason == "Changed my mind"
        assert order.cancelled_by == CancellationActor.CUSTOMER.value
        assert _quantity(product_id) == 10

    def test_bundle_stock_restored_to_components(self, register_product, place_order):
        vitamin_a = register_product("VIT-A", name="A", quantity=5)
        vitamin_b = register_product("VIT-B", name="B", quantity=10)
        bundle_id = register_product("PACK-AB", components=[(vitamin_a, 2), (vitamin_b, 1)])
        placed = place_order(lines=[(bundle_id, 2)])

        _cancel(placed["order_id"])

        assert _quantity(vitamin_a) == 5
        assert _quantity(vitamin_b) == 10

    def test_cannot_cancel_twice(self, register_product, place_order):
        product_id = register_product("OMEGA-3", quantity=10)
        placed = place_order(lines=[(product_id, 1)])
        _cancel(placed["order_id"])

        with pytest.raises(ValidationError):
            _cancel(placed["order_id"])
        assert _quantity(product_id) == 10

    def test_paid_order_cannot_be_cancelled(self, stripe_order):
        confirm_payment(stripe_order["payment_id"])

        with pytest.raises(ValidationError):
            _cancel(stripe_order["order_id"])

        order = current_domain.repository_for(Order).get(stripe_order["order_id"])
        assert order.status == OrderStatus.CONFIRMED.value
        assert _quantity(stripe_order["product_id"]) == 8
