import json

import pytest
from protean.integrations.pytest import DomainFixture
from protean.utils.globals import current_domain


@pytest.fixture(scope="session")
def checkout_bed():
    import checkout.api  # noqa: F401  # load the api package before domain traversal
    from checkout.domain import checkout

    bed = DomainFixture(checkout)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(checkout_bed):
    with checkout_bed.domain_context():
        yield

        # Clear all databases and drain event stores
        for _, provider in current_domain.providers.items():
            provider._data_reset()
        for _, broker in current_domain.brokers.items():
            broker._data_reset()
        current_domain.event_store.store._data_reset()


@pytest.fixture(autouse=True)
def _isolated_runtime():
    """Fresh settings, provider adapters and mail sender for every test."""
    from checkout.config import reset_settings
    from checkout.gateway import reset_gateways
    from checkout.notification.channel import reset_email_sender

    reset_settings()
    reset_gateways()
    reset_email_sender()
    yield
    reset_gateways()
    reset_email_sender()
    reset_settings()


@pytest.fixture()
def mailbox():
    from checkout.notification.channel import set_email_sender
    from checkout.notification.channel.memory_sender import InMemoryEmailSender

    sender = InMemoryEmailSender()
    set_email_sender(sender)
    return sender


@pytest.fixture()
def fake_gateways():
    """Install in-process adapters for every provider. Klarna's needs acknowledgement and line items."""
    from checkout.gateway import set_gateway
    from checkout.gateway.fake_adapter import FakeGateway
    from checkout.gateway.port import PaymentProvider

    gateways = {
        PaymentProvider.STRIPE: FakeGateway(PaymentProvider.STRIPE),
        PaymentProvider.VIPPS: FakeGateway(PaymentProvider.VIPPS),
        PaymentProvider.KLARNA: FakeGateway(
            PaymentProvider.KLARNA, requires_acknowledgement=True, requires_line_items=True
        ),
    }
    for provider, gateway in gateways.items():
        set_gateway(provider, gateway)
    return gateways


BILLING = {
    "first_name": "Kari",
    "last_name": "Nordmann",
    "street": "Storgata 1",
    "city": "Oslo",
    "postal_code": "0155",
    "country": "NO",
}


@pytest.fixture()
def register_product():
    from checkout.inventory.registration import RegisterProduct

    def _register(sku, name=None, price=100.0, quantity=10, track_quantity=True, components=None):
        command = RegisterProduct(
            sku=sku,
            name=name or sku,
            price=price,
            quantity=quantity,
            track_quantity=track_quantity,
            components=json.dumps(
                [{"product_id": product_id, "quantity": per_bundle} for product_id, per_bundle in components]
            )
            if components
            else None,
        )
        return current_domain.process(command, asynchronous=False)

    return _register


@pytest.fixture()
def place_order():
    from checkout.order.placement import PlaceOrder

    def _place(lines=None, cart_id=None, email="kari@example.no", discount_amount=0.0, shipping_address=None):
        command = PlaceOrder(
            cart_id=cart_id,
            lines=json.dumps([{"product_id": product_id, "quantity": qty} for product_id, qty in lines])
            if lines
            else None,
            email=email,
            billing_address=json.dumps(BILLING),
            shipping_address=json.dumps(shipping_address) if shipping_address else None,
            discount_amount=discount_amount,
        )
        return current_domain.process(command, asynchronous=False)

    return _place


@pytest.fixture()
def stripe_order(register_product, place_order, fake_gateways):
    """An order for 2 x 300 NOK with an open Stripe payment."""
    from checkout.payment.intent import create_payment_intent

    product_id = register_product("OMEGA-3", name="Omega-3 Capsules", price=300.0, quantity=10)
    placed = place_order(lines=[(product_id, 2)])
    intent = create_payment_intent(placed["order_id"], "stripe")
    return {"product_id": product_id, **placed, **intent}
