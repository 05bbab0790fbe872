"""Outbox delivery: sends queued notifications and schedules retries.

Delivery always happens after the transaction that queued the row has
committed. Each attempt is its own Unit of Work: a failed send is recorded
(and a retry scheduled) instead of being raised, so one bad message never
blocks the rest of the queue.
"""

from datetime import UTC, datetime

import structlog
from protean import handle
from protean.fields import Identifier
from protean.utils.globals import current_domain

from checkout.config import get_settings
from checkout.domain import checkout
from checkout.notification.channel import get_email_sender
from checkout.notification.notification import Notification, NotificationStatus

logger = structlog.get_logger(__name__)


@checkout.command(part_of="Notification")
class DispatchNotification:
    notification_id = Identifier(required=True)


@checkout.command_handler(part_of=Notification)
class DispatchNotificationHandler:
    @handle(DispatchNotification)
    def dispatch(self, command):
        repo = current_domain.repository_for(Notification)
        notification = repo.get(command.notification_id)

        if NotificationStatus(notification.status) != NotificationStatus.PENDING:
            logger.info(
                "Notification not pending, skipping dispatch",
                notification_id=str(notification.id),
                status=notification.status,
            )
            return notification.status

        try:
            message_id = get_email_sender().send(
                to=notification.recipient,
                subject=notification.subject,
                body=notification.body,
            )
        except Exception as exc:
            notification.record_failure(str(exc), retry_base_seconds=get_settings().notification_retry_base_seconds)
            logger.warning(
                "Notification delivery failed",
                notification_id=str(notification.id),
                attempts=notification.attempts,
                status=notification.status,
                error=str(exc),
            )
        else:
            notification.mark_sent(message_id=message_id)
            logger.info("Notification sent", notification_id=str(notification.id), message_id=message_id)

        repo.add(notification)
        return notification.status


def dispatch_notification(notification_id) -> str:
    """Attempt delivery of one notification now. Returns its resulting status."""
    return current_domain.process(DispatchNotification(notification_id=str(notification_id)), asynchronous=False)


def dispatch_pending(now=None) -> dict:
    """Attempt every pending notification whose next attempt is due.

    Returns counts by resulting status.
    """
    now = now or datetime.now(UTC)
    repo = current_domain.repository_for(Notification)
    due = [notification for notification in repo.pending() if notification.is_due(now)]

    counts = {status.value: 0 for status in NotificationStatus}
    for notification in due:
        counts[dispatch_notification(notification.id)] += 1

    logger.info("Outbox drained", due=len(due), **{k.lower(): v for k, v in counts.items()})
    return counts
