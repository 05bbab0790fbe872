"""Refunds (createRefund): credit back part or all of a settled payment.

Refunds never change the Order's own status; whether a partial refund
affects fulfillment is for whoever issued it to decide. The Order's
``payment_status`` still mirrors the Payment.
"""

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Float, Identifier, String
from protean.utils.globals import current_domain

from checkout.domain import checkout
from checkout.exceptions import ProviderError
from checkout.gateway import get_gateway
from checkout.order.order import Order
from checkout.payment.payment import Payment
from checkout.payment.status import PaymentStatus

logger = structlog.get_logger(__name__)


@checkout.command(part_of="Payment")
class RecordRefund:
    payment_id = Identifier(required=True)
    amount = Float(required=True, min_value=0.01)
    reason = String(required=True, max_length=500)
    provider_refund_id = String(max_length=255)


@checkout.command_handler(part_of=Payment)
class RecordRefundHandler:
    @handle(RecordRefund)
    def record_refund(self, command):
        repo = current_domain.repository_for(Payment)
        payment = repo.get(command.payment_id)
        refund_id = payment.record_refund(
            amount=command.amount,
            reason=command.reason,
            provider_refund_id=command.provider_refund_id,
        )

        order_repo = current_domain.repository_for(Order)
        order = order_repo.get(payment.order_id)
        order.record_payment_status(payment.current_status)

        repo.add(payment)
        order_repo.add(order)
        return refund_id


def refund_payment(payment_id, amount, reason) -> dict:
    payment = current_domain.repository_for(Payment).get(payment_id)

    # Rejected before the provider is asked to move any money
    if payment.current_status not in (PaymentStatus.PAID, PaymentStatus.PARTIALLY_REFUNDED):
        raise ValidationError({"status": [f"Only paid payments can be refunded, payment is {payment.status}"]})
    if amount is None or amount <= 0:
        raise ValidationError({"amount": ["Refund amount must be positive"]})
    if round(amount, 2) > payment.refundable_amount:
        raise ValidationError(
            {"amount": [f"Refund amount {amount} exceeds refundable amount {payment.refundable_amount}"]}
        )

    gateway = get_gateway(payment.provider)
    result = gateway.refund_payment(payment.provider_transaction_id, amount, reason)
    if not result.success:
        raise ProviderError(payment.provider, "Provider rejected the refund", raw=result.native_status)

    refund_id = current_domain.process(
        RecordRefund(payment_id=str(payment.id), amount=amount, reason=reason, provider_refund_id=result.refund_id),
        asynchronous=False,
    )
    payment = current_domain.repository_for(Payment).get(payment_id)

    logger.info(
        "Payment refunded",
        payment_id=str(payment.id),
        amount=amount,
        total_refunded=payment.refunded_amount,
        status=payment.status,
    )
    return {
        "payment_id": str(payment.id),
        "refund_id": refund_id,
        "status": payment.status,
        "refunded_amount": payment.refunded_amount,
        "provider_refund_id": result.refund_id,
    }
