"""Payment cancellation (cancelPayment).

Buy-now-pay-later payments can only be cancelled while authorized and not
yet captured; card and wallet payments are cancelled at the provider
whether or not the customer has finished the interactive step. The order is
cancelled with its stock restored in the same Unit of Work as the Payment.
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


def cancellable_statuses(two_phase: bool) -> tuple:
    if two_phase:
        return (PaymentStatus.AUTHORIZED,)
    return (PaymentStatus.PENDING, PaymentStatus.AUTHORIZED)


def cancel_payment(payment_id, reason: str = "Cancelled by customer") -> dict:
    payment = current_domain.repository_for(Payment).get(payment_id)
    gateway = get_gateway(payment.provider)

    allowed = cancellable_statuses(gateway.two_phase)
    if payment.current_status not in allowed:
        raise ValidationError(
            {
                "status": [
                    f"Cannot cancel a {payment.status} {payment.provider} payment; "
                    f"allowed from {', '.join(status.value for status in allowed)}"
                ]
            }
        )

    if not gateway.cancel_payment(payment.provider_transaction_id):
        raise ProviderError(payment.provider, "Provider refused the cancellation")

    outcome = current_domain.process(
        ReconcilePayment(
            provider=payment.provider,
            transaction_id=payment.provider_transaction_id,
            status=CanonicalStatus.CANCELLED.value,
            source="cancel",
            reason=reason,
        ),
        asynchronous=False,
    )
    settle(gateway, outcome)

    logger.info("Payment cancelled", payment_id=str(payment.id), reason=reason)
    return {
        "payment_id": str(payment.id),
        "status": outcome["payment_status"],
        "transaction_id": payment.provider_transaction_id,
    }
