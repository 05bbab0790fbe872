"""Email sender that only writes the message to the log.

Default in development: the mail transport belongs to the external
Notification Service, so locally nothing leaves the process.
"""

from uuid import uuid4

import structlog

from checkout.notification.channel.port import EmailSender

logger = structlog.get_logger(__name__)


class LogEmailSender(EmailSender):
    def send(self, to: str, subject: str, body: str) -> str:
        message_id = f"log-{uuid4().hex[:12]}"
        logger.info("Email sent", to=to, subject=subject, message_id=message_id, length=len(body))
        return message_id
