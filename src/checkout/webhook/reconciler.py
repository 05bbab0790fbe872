"""Webhook entry point: authenticity, translation, reconciliation, follow-up.

The order of work is fixed:

1. The provider adapter verifies the signature over the raw body. Nothing is
   read from the database before that succeeds.
2. The event is translated to a canonical status. Events the engine does
   not act on are acknowledged and ignored, since providers retry anything
   that is not a 200.
3. ``ReconcilePayment`` applies the status in one Unit of Work.
4. After commit: providers that require it get their acknowledgment, and
   queued notifications are handed to the outbox dispatcher.
"""

from collections.abc import Mapping

import structlog
from protean.exceptions import ValidationError
from protean.utils.globals import current_domain

from checkout.gateway import get_gateway
from checkout.gateway.port import PaymentGateway, PaymentProvider
from checkout.notification.dispatch import dispatch_notification
from checkout.webhook.reconciliation import ReconcilePayment, RecordAcknowledgement

logger = structlog.get_logger(__name__)


def settle(gateway: PaymentGateway, outcome: dict) -> None:
    """Run the provider and notification follow-ups of a committed reconciliation.

    A failed acknowledgment propagates (as ``ProviderError``) so the provider
    delivers the event again; the redelivery finds the state already applied
    and only retries the acknowledgment. Notification delivery never fails
    the caller: undelivered rows stay in the outbox for the next drain.
    """
    if gateway.requires_acknowledgement and outcome.get("awaiting_acknowledgement"):
        gateway.acknowledge(outcome["transaction_id"])
        current_domain.process(RecordAcknowledgement(payment_id=outcome["payment_id"]), asynchronous=False)

    for notification_id in outcome.get("notification_ids", []):
        try:
            dispatch_notification(notification_id)
        except Exception:
            logger.exception("Notification dispatch raised; left in outbox", notification_id=notification_id)


def handle_webhook(provider, raw_body: bytes, headers: Mapping[str, str]) -> dict:
    provider = PaymentProvider.parse(provider)
    gateway = get_gateway(provider)
    headers = {key.lower(): value for key, value in headers.items()}

    event = gateway.parse_webhook(raw_body, headers)

    if event.status is None:
        logger.info("Webhook event ignored", provider=provider.value, event_type=event.event_type)
        return {"status": "ignored", "event_type": event.event_type}
    if not event.transaction_id:
        raise ValidationError({"transaction_id": ["Webhook event does not name a transaction"]})

    outcome = current_domain.process(
        ReconcilePayment(
            provider=provider.value,
            transaction_id=event.transaction_id,
            status=event.status.value,
            event_id=event.event_id,
            event_type=event.event_type,
            source="webhook",
        ),
        asynchronous=False,
    )
    settle(gateway, outcome)

    return {
        "status": "duplicate" if outcome["duplicate"] else "processed",
        "event_type": event.event_type,
        "payment_status": outcome["payment_status"],
    }
