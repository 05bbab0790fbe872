"""Shared BDD fixtures and step definitions for the checkout domain."""

import pytest
from checkout.exceptions import CheckoutError
from checkout.inventory.product import Product
from checkout.order.order import Order
from checkout.payment.payment import Payment
from protean.exceptions import ValidationError
from protean.utils.globals import current_domain
from pytest_bdd import given, parsers, then, when


@pytest.fixture()
def catalog():
    """Product ids by name."""
    return {}


@pytest.fixture()
def outcome():
    """What the last action produced: the placed order, the API result, or the error raised."""
    return {"result": None, "exc": None}


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse('product "{name}" with {quantity:d} units in stock'))
def _(register_product, catalog, name, quantity):
    catalog[name] = register_product(name.upper().replace(" ", "-"), name=name, quantity=quantity)


@given(parsers.cfparse('product "{name}" priced {price:d}'))
def _(register_product, catalog, name, price):
    catalog[name] = register_product(name.upper().replace(" ", "-"), name=name, price=float(price), quantity=100)


@given(parsers.cfparse('a bundle "{name}" of {first_qty:d} "{first}" and {second_qty:d} "{second}"'))
def _(register_product, catalog, name, first_qty, first, second_qty, second):
    catalog[name] = register_product(
        name.upper().replace(" ", "-"),
        name=name,
        components=[(catalog[first], first_qty), (catalog[second], second_qty)],
    )


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when(parsers.cfparse('a customer orders {quantity:d} "{name}"'))
def _(place_order, catalog, outcome, name, quantity):
    try:
        outcome["result"] = place_order(lines=[(catalog[name], quantity)])
    except (ValidationError, CheckoutError) as exc:
        outcome["exc"] = exc


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the order is rejected with "{message}"'))
def _(outcome, message):
    assert outcome["result"] is None
    assert str(outcome["exc"]) == message


@then("the order is placed")
def _(outcome):
    assert outcome["exc"] is None
    assert outcome["result"]["order_number"].startswith("HS-")


@then(parsers.cfparse('product "{name}" has {quantity:d} units in stock'))
def _(catalog, name, quantity):
    assert current_domain.repository_for(Product).get(catalog[name]).quantity == quantity


@then(parsers.cfparse('the order is "{status}"'))
def _(outcome, status):
    assert current_domain.repository_for(Order).get(outcome["order_id"]).status == status


@then(parsers.cfparse('the payment is "{status}"'))
def _(outcome, status):
    assert current_domain.repository_for(Payment).get(outcome["payment_id"]).status == status
