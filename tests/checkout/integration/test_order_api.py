"""Integration tests for the order endpoints via TestClient."""

from unittest.mock import patch

import pytest
from checkout.api import order_router, register_exception_handlers
from checkout.inventory.accessor import InventoryAccessor
from checkout.inventory.product import Product
from fastapi import FastAPI
from fastapi.testclient import TestClient
from protean.exceptions import ExpectedVersionError
from protean.utils.globals import current_domain

BILLING = {
    "first_name": "Kari",
    "last_name": "Nordmann",
    "street": "Storgata 1",
    "city": "Oslo",
    "postal_code": "0155",
    "country": "NO",
}


@pytest.fixture()
def client():
    app = FastAPI()
    app.include_router(order_router)
    register_exception_handlers(app)
    return TestClient(app)


def _place(client, lines, **extra):
    return client.post(
        "/orders",
        json={"lines": lines, "email": "kari@example.no", "billing_address": BILLING, **extra},
    )


class TestPlaceOrderEndpoint:
    def test_place_order(self, client, register_product):
        product_id = register_product("OMEGA-3", name="Omega-3", price=300.0, quantity=10)

        response = _place(client, [{"product_id": product_id, "quantity": 2}])

        assert response.status_code == 201
        assert response.json()["order_number"].startswith("HS-")

    def test_insufficient_stock(self, client, register_product):
        vitamin_a = register_product("VIT-A", name="A", quantity=5)
        vitamin_b = register_product("VIT-B", name="B", quantity=10)
        bundle_id = register_product("PACK-AB", components=[(vitamin_a, 2), (vitamin_b, 1)])

        response = _place(client, [{"product_id": bundle_id, "quantity": 3}])

        assert response.status_code == 400
        assert response.json() == {
            "success": False,
            "error": {
                "code": "INSUFFICIENT_STOCK",
                "message": "insufficient stock for A",
                "details": {"product": "A", "requested": 6, "available": 5},
            },
        }
        assert current_domain.repository_for(Product).get(vitamin_a).quantity == 5

    def test_invalid_quantity(self, client, register_product):
        product_id = register_product("OMEGA-3")
        response = _place(client, [{"product_id": product_id, "quantity": 0}])
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_missing_billing_address(self, client, register_product):
        product_id = register_product("OMEGA-3")
        response = client.post(
            "/orders", json={"lines": [{"product_id": product_id, "quantity": 1}], "email": "kari@example.no"}
        )
        assert response.status_code == 400


class TestReadAndCancel:
    def test_get_order(self, client, register_product):
        product_id = register_product("PROTEIN", name="Whey", price=1200.0)
        order_id = _place(client, [{"product_id": product_id, "quantity": 1}]).json()["order_id"]

        data = client.get(f"/orders/{order_id}").json()

        assert data["status"] == "Pending"
        assert data["payment_status"] == "Pending"
        assert data["subtotal"] == 1200.0
        assert data["shipping_amount"] == 99.0
        assert data["total_amount"] == 1299.0
        assert data["lines"][0]["product_name"] == "Whey"
        assert data["shipping_address"]["city"] == "Oslo"

    def test_get_missing_order(self, client):
        response = client.get("/orders/missing")
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"

    def test_cancel(self, client, register_product):
        product_id = register_product("OMEGA-3", quantity=10)
        order_id = _place(client, [{"product_id": product_id, "quantity": 3}]).json()["order_id"]

        response = client.post(f"/orders/{order_id}/cancel", json={"reason": "Ordered by mistake"})

        assert response.status_code == 200
        assert response.json() == {"status": "cancelled"}
        assert client.get(f"/orders/{order_id}").json()["status"] == "Cancelled"
        assert current_domain.repository_for(Product).get(product_id).quantity == 10

    def test_cancel_twice_rejected(self, client, register_product):
        product_id = register_product("OMEGA-3", quantity=10)
        order_id = _place(client, [{"product_id": product_id, "quantity": 1}]).json()["order_id"]
        client.post(f"/orders/{order_id}/cancel", json={})

        response = client.post(f"/orders/{order_id}/cancel", json={})
        assert response.status_code == 400

    def test_concurrent_restock_is_a_retryable_conflict(self, client, register_product):
        product_id = register_product("OMEGA-3", quantity=10)
        order_id = _place(client, [{"product_id": product_id, "quantity": 3}]).json()["order_id"]

        def _stale_counter(self, product_id, quantity):
            raise ExpectedVersionError("Wrong expected version: 0")

        with patch.object(InventoryAccessor, "increment", _stale_counter):
            response = client.post(f"/orders/{order_id}/cancel", json={})

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "CONFLICT"
        assert response.json()["error"]["details"] == {"retryable": True}
        assert client.get(f"/orders/{order_id}").json()["status"] == "Pending"
        assert current_domain.repository_for(Product).get(product_id).quantity == 7

    def test_stock_race_during_placement_is_a_retryable_conflict(self, client, register_product):
        product_id = register_product("OMEGA-3", quantity=10)

        def _stale_counter(self, product_id, quantity):
            raise ExpectedVersionError("Wrong expected version: 0")

        with patch.object(InventoryAccessor, "decrement_if_available", _stale_counter):
            response = _place(client, [{"product_id": product_id, "quantity": 2}])

        assert response.status_code == 409
        assert response.json()["error"]["details"] == {"retryable": True}
        assert current_domain.repository_for(Product).get(product_id).quantity == 10
