"""Domain events for the Notification outbox."""

from protean.fields import Boolean, DateTime, Identifier, Integer, String

from checkout.domain import checkout


@checkout.event(part_of="Notification")
class NotificationQueued:
    __version__ = 1

    notification_id = Identifier(required=True)
    kind = String(required=True)
    order_id = Identifier(required=True)
    recipient = String(required=True)
    dedupe_key = String(required=True)
    queued_at = DateTime(required=True)


@checkout.event(part_of="Notification")
class NotificationSent:
    __version__ = 1

    notification_id = Identifier(required=True)
    order_id = Identifier(required=True)
    message_id = String()
    attempts = Integer(required=True)
    sent_at = DateTime(required=True)


@checkout.event(part_of="Notification")
class NotificationDeliveryFailed:
    __version__ = 1

    notification_id = Identifier(required=True)
    order_id = Identifier(required=True)
    reason = String(required=True)
    attempts = Integer(required=True)
    will_retry = Boolean(default=False)
    next_attempt_at = DateTime()
    failed_at = DateTime(required=True)
