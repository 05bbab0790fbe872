"""Tests for the Order aggregate: placement snapshot, transitions, cancellation rules."""

import json

import pytest
from checkout.order.events import OrderCancelled, OrderPaymentStatusChanged, OrderPlaced
from checkout.order.order import CancellationActor, Order, OrderStatus
from checkout.payment.status import PaymentStatus
from protean.exceptions import ValidationError

BILLING = {
    "first_name": "Kari",
    "last_name": "Nordmann",
    "street": "Storgata 1",
    "city": "Oslo",
    "postal_code": "0155",
    "country": "NO",
}

PRICING = {
    "subtotal": 600.0,
    "shipping_amount": 99.0,
    "discount_amount": 0.0,
    "total_amount": 699.0,
    "currency": "nok",
}


def _line(product_id="p-1", quantity=2, unit_price=300.0, allocation=None):
    return {
        "product_id": product_id,
        "product_name": "Omega-3",
        "product_sku": "OMEGA-3",
        "quantity": quantity,
        "unit_price": unit_price,
        "line_total": unit_price * quantity,
        "stock_allocation": allocation or {product_id: quantity},
    }


def _order(**overrides):
    kwargs = {
        "order_number": "HS-1-ABCDEFGHI",
        "email": "kari@example.no",
        "billing_address": BILLING,
        "lines_data": [_line()],
        "pricing": PRICING,
    }
    kwargs.update(overrides)
    order = Order.place(**kwargs)
    order._events.clear()
    return order


class TestPlace:
    def test_new_order_is_pending_and_unpaid(self):
        order = _order()
        assert order.status == OrderStatus.PENDING.value
        assert order.payment_status == PaymentStatus.PENDING.value

    def test_shipping_address_falls_back_to_billing(self):
        order = _order()
        assert order.shipping_address.to_dict() == order.billing_address.to_dict()

    def test_separate_shipping_address(self):
        shipping = {**BILLING, "street": "Kirkegata 5", "city": "Bergen"}
        order = _order(shipping_address=shipping)
        assert order.shipping_address.city == "Bergen"
        assert order.billing_address.city == "Oslo"

    def test_lines_keep_snapshot(self):
        order = _order()
        line = order.ordered_lines[0]
        assert line.product_name == "Omega-3"
        assert line.unit_price == 300.0
        assert line.line_total == 600.0

    def test_needs_at_least_one_line(self):
        with pytest.raises(ValidationError):
            _order(lines_data=[])

    def test_raises_order_placed(self):
        order = Order.place(
            order_number="HS-2-ABCDEFGHI",
            email="kari@example.no",
            billing_address=BILLING,
            lines_data=[_line()],
            pricing=PRICING,
        )
        event = order._events[-1]
        assert isinstance(event, OrderPlaced)
        assert event.total_amount == 699.0
        assert json.loads(event.lines)[0]["product_sku"] == "OMEGA-3"

    def test_stock_allocation_sums_lines(self):
        order = _order(
            lines_data=[
                _line("bundle-1", 3, allocation={"a": 6, "b": 3}),
                _line("a", 1, allocation={"a": 1}),
            ]
        )
        assert dict(order.stock_allocation()) == {"a": 7, "b": 3}


class TestTransitions:
    def test_confirm_then_process(self):
        order = _order()
        order.confirm()
        assert order.status == OrderStatus.CONFIRMED.value
        order.start_processing()
        assert order.status == OrderStatus.PROCESSING.value

    def test_cannot_process_a_pending_order(self):
        with pytest.raises(ValidationError):
            _order().start_processing()

    def test_record_payment_status_is_idempotent(self):
        order = _order()
        order.record_payment_status(PaymentStatus.PAID)
        order.record_payment_status(PaymentStatus.PAID)
        changes = [e for e in order._events if isinstance(e, OrderPaymentStatusChanged)]
        assert len(changes) == 1
        assert order.payment_status == PaymentStatus.PAID.value


class TestCancel:
    def test_customer_can_cancel_pending_unpaid_order(self):
        order = _order()
        order.cancel(reason="Changed my mind")
        assert order.status == OrderStatus.CANCELLED.value
        assert order.cancelled_by == CancellationActor.CUSTOMER.value
        assert isinstance(order._events[-1], OrderCancelled)

    def test_customer_cannot_cancel_confirmed_order(self):
        order = _order()
        order.confirm()
        with pytest.raises(ValidationError):
            order.cancel(reason="Too late")

    def test_customer_cannot_cancel_once_payment_moved(self):
        order = _order()
        order.record_payment_status(PaymentStatus.AUTHORIZED)
        with pytest.raises(ValidationError):
            order.cancel(reason="Too late", cancelled_by=CancellationActor.ADMIN.value)

    def test_provider_can_cancel_confirmed_order(self):
        order = _order()
        order.confirm()
        order.record_payment_status(PaymentStatus.AUTHORIZED)
        order.cancel(reason="Authorization voided", cancelled_by=CancellationActor.PAYMENT_PROVIDER.value)
        assert order.status == OrderStatus.CANCELLED.value

    def test_processing_order_cannot_be_cancelled_by_anyone(self):
        order = _order()
        order.confirm()
        order.start_processing()
        with pytest.raises(ValidationError):
            order.cancel(reason="x", cancelled_by=CancellationActor.PAYMENT_PROVIDER.value)

    def test_cancelled_event_lists_restored_stock(self):
        order = _order(lines_data=[_line("p-9", 4)])
        order.cancel(reason="Changed my mind")
        assert json.loads(order._events[-1].restored_stock) == {"p-9": 4}
