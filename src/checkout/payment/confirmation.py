"""Explicit confirmation: ask the provider where a payment stands and apply it.

Used by the storefront when the customer returns from an interactive flow,
before (or instead of) the webhook arriving. The fetched status goes
through the same reconciliation as a webhook, so the two can race safely.
"""

import structlog
from protean.utils.globals import current_domain

from checkout.gateway import get_gateway
from checkout.payment.payment import Payment
from checkout.webhook.reconciler import settle
from checkout.webhook.reconciliation import ReconcilePayment

logger = structlog.get_logger(__name__)


def confirm_payment(payment_id) -> dict:
    payment = current_domain.repository_for(Payment).get(payment_id)
    gateway = get_gateway(payment.provider)

    result = gateway.confirm_payment(payment.provider_transaction_id)
    outcome = current_domain.process(
        ReconcilePayment(
            provider=payment.provider,
            transaction_id=payment.provider_transaction_id,
            status=result.status.value,
            source="confirm",
        ),
        asynchronous=False,
    )
    settle(gateway, outcome)

    logger.info(
        "Payment confirmation polled",
        payment_id=str(payment.id),
        reported=result.status.value,
        payment_status=outcome["payment_status"],
    )
    return {
        "payment_id": str(payment.id),
        "status": outcome["payment_status"],
        "transaction_id": payment.provider_transaction_id,
    }
