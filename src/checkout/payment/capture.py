"""Capture: settle an authorized payment on a two-phase provider.

The captured payment is applied as a ``completed`` status, which pays the
Payment, moves a confirmed Order on to PROCESSING and queues the
confirmation email.
"""

import structlog
from protean.exceptions import ValidationError
from protean.utils.globals import current_domain

from checkout.exceptions import ProviderError
from checkout.gateway import get_gateway
from checkout.gateway.port import CanonicalStatus
from checkout.payment.payment import Payment
from checkout.payment.status import PaymentStatus
from checkout.webhook.reconciler import settle
from checkout.webhook.reconciliation import ReconcilePayment

logger = structlog.get_logger(__name__)


def capture_payment(payment_id) -> dict:
    payment = current_domain.repository_for(Payment).get(payment_id)
    gateway = get_gateway(payment.provider)

    if not gateway.two_phase:
        raise ValidationError({"provider": [f"{payment.provider} payments are captured automatically"]})
    if payment.current_status != PaymentStatus.AUTHORIZED:
        raise ValidationError({"status": [f"Only authorized payments can be captured, payment is {payment.status}"]})

    result = gateway.capture_payment(payment.provider_transaction_id, payment.amount, payment.currency)
    if not result.success or result.status != CanonicalStatus.COMPLETED:
        raise ProviderError(payment.provider, "Capture was not completed", raw=result.native_status)

    outcome = current_domain.process(
        ReconcilePayment(
            provider=payment.provider,
            transaction_id=payment.provider_transaction_id,
            status=CanonicalStatus.COMPLETED.value,
            source="capture",
        ),
        asynchronous=False,
    )
    settle(gateway, outcome)

    logger.info("Payment captured", payment_id=str(payment.id), amount=payment.amount)
    return {
        "payment_id": str(payment.id),
        "status": outcome["payment_status"],
        "transaction_id": payment.provider_transaction_id,
    }
