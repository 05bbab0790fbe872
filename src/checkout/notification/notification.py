"""Notification aggregate (CQRS): the outbox row for one outgoing message.

Rows are written in the same transaction as the state change that calls for
them and delivered afterwards, at least once, by ``checkout.notification.dispatch``.
``dedupe_key`` is unique, so the same business fact can never queue the same
message twice.

State Machine:
    PENDING → SENT
    PENDING → (failed attempt, retry scheduled) → PENDING
    PENDING → FAILED              (retries exhausted)
"""

from datetime import UTC, datetime, timedelta
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, Identifier, Integer, String, Text

from checkout.domain import checkout
from checkout.notification.events import (
    NotificationDeliveryFailed,
    NotificationQueued,
    NotificationSent,
)


class NotificationKind(Enum):
    ORDER_CONFIRMATION = "OrderConfirmation"


class NotificationStatus(Enum):
    PENDING = "Pending"
    SENT = "Sent"
    FAILED = "Failed"


@checkout.aggregate
class Notification:
    kind: String(choices=NotificationKind, required=True)
    order_id: Identifier(required=True)
    recipient: String(max_length=254, required=True)
    dedupe_key: String(max_length=255, required=True, unique=True)

    # Content
    subject: String(max_length=500, required=True)
    body: Text(required=True)
    payload: Text()  # JSON snapshot the message was rendered from

    status: String(choices=NotificationStatus, default=NotificationStatus.PENDING.value)

    # Delivery
    attempts: Integer(default=0)
    max_retries: Integer(default=3)
    next_attempt_at: DateTime()
    last_error: String(max_length=500)
    message_id: String(max_length=255)
    sent_at: DateTime()

    created_at: DateTime()
    updated_at: DateTime()

    @classmethod
    def enqueue(cls, kind, order_id, recipient, dedupe_key, subject, body, payload=None, max_retries=3):
        now = datetime.now(UTC)
        notification = cls(
            kind=kind.value if isinstance(kind, NotificationKind) else kind,
            order_id=order_id,
            recipient=recipient,
            dedupe_key=dedupe_key,
            subject=subject,
            body=body,
            payload=payload,
            status=NotificationStatus.PENDING.value,
            attempts=0,
            max_retries=max_retries,
            next_attempt_at=now,
            created_at=now,
            updated_at=now,
        )
        notification.raise_(
            NotificationQueued(
                notification_id=str(notification.id),
                kind=notification.kind,
                order_id=str(order_id),
                recipient=recipient,
                dedupe_key=dedupe_key,
                queued_at=now,
            )
        )
        return notification

    def is_due(self, now=None) -> bool:
        if NotificationStatus(self.status) != NotificationStatus.PENDING:
            return False
        now = now or datetime.now(UTC)
        return self.next_attempt_at is None or self.next_attempt_at <= now

    def _assert_pending(self):
        if NotificationStatus(self.status) != NotificationStatus.PENDING:
            raise ValidationError({"status": [f"Notification is already {self.status}"]})

    def mark_sent(self, message_id=None, now=None):
        self._assert_pending()
        now = now or datetime.now(UTC)
        self.status = NotificationStatus.SENT.value
        self.attempts = (self.attempts or 0) + 1
        self.message_id = message_id
        self.sent_at = now
        self.next_attempt_at = None
        self.updated_at = now
        self.raise_(
            NotificationSent(
                notification_id=str(self.id),
                order_id=str(self.order_id),
                message_id=message_id,
                attempts=self.attempts,
                sent_at=now,
            )
        )

    def record_failure(self, reason, retry_base_seconds=60, now=None):
        """Count a failed attempt and either schedule the next one or give up.

        Retries back off exponentially: base, 2 × base, 4 × base, ...
        """
        self._assert_pending()
        now = now or datetime.now(UTC)
        self.attempts = (self.attempts or 0) + 1
        self.last_error = str(reason)[:500]
        self.updated_at = now

        will_retry = self.attempts <= self.max_retries
        if will_retry:
            self.next_attempt_at = now + timedelta(seconds=retry_base_seconds * 2 ** (self.attempts - 1))
        else:
            self.status = NotificationStatus.FAILED.value
            self.next_attempt_at = None

        self.raise_(
            NotificationDeliveryFailed(
                notification_id=str(self.id),
                order_id=str(self.order_id),
                reason=self.last_error,
                attempts=self.attempts,
                will_retry=will_retry,
                next_attempt_at=self.next_attempt_at,
                failed_at=now,
            )
        )


@checkout.repository(part_of=Notification)
class NotificationRepository:
    def find_by_dedupe_key(self, dedupe_key: str) -> Notification | None:
        results = self._dao.query.filter(dedupe_key=dedupe_key).all().items
        return results[0] if results else None

    def pending(self) -> list[Notification]:
        return self._dao.query.filter(status=NotificationStatus.PENDING.value).all().items
