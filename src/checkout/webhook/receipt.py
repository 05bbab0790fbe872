"""WebhookReceipt aggregate: remembers every provider event already applied.

``receipt_key`` (provider + provider event id) is unique, so a redelivered
event is recognised before anything else is read or written.
"""

from datetime import UTC, datetime

from protean.fields import DateTime, String

from checkout.domain import checkout


def receipt_key(provider: str, event_id: str) -> str:
    return f"{provider}:{event_id}"


@checkout.aggregate
class WebhookReceipt:
    receipt_key = String(max_length=400, required=True, unique=True)
    provider = String(max_length=20, required=True)
    event_id = String(max_length=300, required=True)
    event_type = String(max_length=100)
    transaction_id = String(max_length=255)
    canonical_status = String(max_length=20)
    outcome = String(max_length=50)
    received_at = DateTime()

    @classmethod
    def record(cls, provider, event_id, event_type, transaction_id, canonical_status, outcome):
        return cls(
            receipt_key=receipt_key(provider, event_id),
            provider=provider,
            event_id=event_id,
            event_type=event_type,
            transaction_id=transaction_id,
            canonical_status=canonical_status,
            outcome=outcome,
            received_at=datetime.now(UTC),
        )


@checkout.repository(part_of=WebhookReceipt)
class WebhookReceiptRepository:
    def find(self, provider: str, event_id: str) -> WebhookReceipt | None:
        results = self._dao.query.filter(receipt_key=receipt_key(provider, event_id)).all().items
        return results[0] if results else None
