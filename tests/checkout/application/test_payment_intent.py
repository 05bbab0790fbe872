"""Tests for opening payments with each provider."""

import pytest
from checkout.exceptions import ConflictError, ProviderError
from checkout.gateway.port import PaymentProvider
from checkout.payment.confirmation import confirm_payment
from checkout.payment.intent import create_payment_intent
from checkout.payment.payment import Payment
from checkout.payment.status import PaymentStatus
from protean.exceptions import ValidationError
from protean.utils.globals import current_domain


def _payments_for(order_id):
    return current_domain.repository_for(Payment).for_order(order_id)


@pytest.fixture()
def order(register_product, place_order):
    product_id = register_product("OMEGA-3", name="Omega-3 Capsules", price=300.0, quantity=10)
    return place_order(lines=[(product_id, 2)])


class TestCreatePaymentIntent:
    def test_card_payment_returns_client_secret(self, order, fake_gateways):
        intent = create_payment_intent(order["order_id"], "stripe")

        assert intent["client_secret"].endswith("_secret")
        assert intent["amount"] == 699.0
        assert intent["currency"] == "nok"

        payment = current_domain.repository_for(Payment).get(intent["payment_id"])
        assert payment.status == PaymentStatus.PENDING.value
        assert payment.provider == "stripe"
        assert payment.provider_transaction_id == intent["transaction_id"]
        assert payment.amount == 699.0

    def test_wallet_payment_returns_redirect(self, order, fake_gateways):
        intent = create_payment_intent(order["order_id"], "vipps")
        assert intent["checkout_url"].startswith("https://wallet.test/")
        assert intent["client_secret"] is None

    def test_bnpl_payment_sends_itemized_lines(self, order, fake_gateways):
        intent = create_payment_intent(order["order_id"], "klarna")
        assert intent["embedded_snippet"]

        call = fake_gateways[PaymentProvider.KLARNA].calls_to("create_payment")[0]
        lines = call["line_items"]
        assert [(line.reference, line.quantity, line.unit_price, line.kind) for line in lines] == [
            ("OMEGA-3", 2, 300.0, "physical"),
            ("shipping", 1, 99.0, "shipping_fee"),
        ]
        assert sum(line.quantity * line.unit_price for line in lines) == call["amount"]

    def test_reference_is_order_number_and_attempt(self, order, fake_gateways):
        create_payment_intent(order["order_id"], "stripe")
        create_payment_intent(order["order_id"], "stripe")

        references = [c["order_reference"] for c in fake_gateways[PaymentProvider.STRIPE].calls_to("create_payment")]
        assert references == [f"{order['order_number']}-1", f"{order['order_number']}-2"]
        assert len(_payments_for(order["order_id"])) == 2

    def test_provider_failure_records_nothing(self, order, fake_gateways):
        fake_gateways[PaymentProvider.STRIPE].configure(should_succeed=False)

        with pytest.raises(ProviderError):
            create_payment_intent(order["order_id"], "stripe")
        assert _payments_for(order["order_id"]) == []

    def test_unsupported_provider(self, order, fake_gateways):
        with pytest.raises(ValidationError):
            create_payment_intent(order["order_id"], "paypal")

    def test_paid_order_takes_no_new_payment(self, order, fake_gateways):
        intent = create_payment_intent(order["order_id"], "stripe")
        confirm_payment(intent["payment_id"])

        with pytest.raises(ConflictError):
            create_payment_intent(order["order_id"], "vipps")
        assert fake_gateways[PaymentProvider.VIPPS].calls_to("create_payment") == []
