"""Payment intent: open a payment at the provider and record it.

The provider call happens before any Unit of Work is opened; only once the
provider has accepted the attempt is the Payment written. A provider failure
therefore leaves nothing behind.
"""

import structlog
from protean import handle
from protean.fields import Float, Identifier, String, Text
from protean.utils.globals import current_domain

from checkout.domain import checkout
from checkout.exceptions import ConflictError, ProviderError
from checkout.gateway import get_gateway
from checkout.gateway.port import CanonicalStatus, LineItem, PaymentProvider, PaymentResult
from checkout.order.order import Order, OrderStatus
from checkout.payment.payment import Payment
from checkout.payment.status import PaymentStatus

logger = structlog.get_logger(__name__)

_SETTLED = (PaymentStatus.AUTHORIZED, PaymentStatus.PAID)


@checkout.command(part_of="Payment")
class RecordPaymentIntent:
    order_id = Identifier(required=True)
    provider = String(choices=PaymentProvider, required=True)
    provider_transaction_id = String(max_length=255, required=True)
    amount = Float(required=True)
    currency = String(max_length=3, required=True)
    client_secret = String(max_length=500)
    checkout_url = String(max_length=2000)
    embedded_snippet = Text()
    provider_status = String(max_length=100)


def ensure_payable(order: Order, payments: list) -> None:
    if OrderStatus(order.status) != OrderStatus.PENDING:
        raise ConflictError(
            f"Order {order.order_number} is {order.status} and cannot take a new payment",
            details={"order_id": str(order.id)},
        )
    if any(payment.current_status in _SETTLED for payment in payments):
        raise ConflictError(
            f"Order {order.order_number} already has an authorized or paid payment",
            details={"order_id": str(order.id)},
        )


def build_line_items(order: Order) -> list[LineItem]:
    """Provider line items that add up to the order total."""
    items = [
        LineItem(
            reference=line.product_sku,
            name=line.product_name,
            quantity=line.quantity,
            unit_price=line.unit_price,
        )
        for line in order.ordered_lines
    ]
    pricing = order.pricing
    if pricing.shipping_amount:
        items.append(
            LineItem(reference="shipping", name="Shipping", quantity=1, unit_price=pricing.shipping_amount, kind="shipping_fee")
        )
    if pricing.discount_amount:
        items.append(
            LineItem(reference="discount", name="Discount", quantity=1, unit_price=-pricing.discount_amount, kind="discount")
        )
    return items


@checkout.command_handler(part_of=Payment)
class RecordPaymentIntentHandler:
    @handle(RecordPaymentIntent)
    def record_intent(self, command):
        order = current_domain.repository_for(Order).get(command.order_id)
        repo = current_domain.repository_for(Payment)
        # Checked again here: another intent may have settled since the provider call
        ensure_payable(order, repo.for_order(order.id))

        payment = Payment.initiate(
            order_id=order.id,
            provider=PaymentProvider(command.provider),
            result=PaymentResult(
                success=True,
                transaction_id=command.provider_transaction_id,
                amount=command.amount,
                currency=command.currency,
                status=CanonicalStatus.PENDING,
                client_secret=command.client_secret,
                checkout_url=command.checkout_url,
                embedded_snippet=command.embedded_snippet,
                native_status=command.provider_status,
            ),
        )
        repo.add(payment)
        return str(payment.id)


def create_payment_intent(order_id, provider) -> dict:
    """Open a payment for the order's total with the chosen provider."""
    provider = PaymentProvider.parse(provider)
    order = current_domain.repository_for(Order).get(order_id)
    existing = current_domain.repository_for(Payment).for_order(order.id)
    ensure_payable(order, existing)

    gateway = get_gateway(provider)
    pricing = order.pricing
    result = gateway.create_payment(
        amount=pricing.total_amount,
        currency=pricing.currency,
        order_reference=f"{order.order_number}-{len(existing) + 1}",
        customer_email=order.email,
        line_items=build_line_items(order),
    )
    if not result.success or not result.transaction_id:
        raise ProviderError(provider.value, "Provider did not open the payment", raw=result)

    payment_id = current_domain.process(
        RecordPaymentIntent(
            order_id=str(order.id),
            provider=provider.value,
            provider_transaction_id=result.transaction_id,
            amount=pricing.total_amount,
            currency=pricing.currency,
            client_secret=result.client_secret,
            checkout_url=result.checkout_url,
            embedded_snippet=result.embedded_snippet,
            provider_status=result.native_status,
        ),
        asynchronous=False,
    )
    logger.info(
        "Payment intent created",
        payment_id=payment_id,
        order_id=str(order.id),
        provider=provider.value,
        transaction_id=result.transaction_id,
        amount=pricing.total_amount,
    )
    return {
        "payment_id": payment_id,
        "provider": provider.value,
        "transaction_id": result.transaction_id,
        "client_secret": result.client_secret,
        "checkout_url": result.checkout_url,
        "embedded_snippet": result.embedded_snippet,
        "amount": pricing.total_amount,
        "currency": pricing.currency,
    }
