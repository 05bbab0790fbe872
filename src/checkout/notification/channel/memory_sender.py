"""Email sender that keeps messages in memory, for tests."""

from uuid import uuid4

from checkout.notification.channel.port import EmailSender


class DeliveryError(Exception):
    pass


class InMemoryEmailSender(EmailSender):
    def __init__(self):
        self.outbox: list[dict] = []
        self.failures_remaining = 0
        self.failure_reason = "Mailbox unavailable"

    def fail_next(self, times: int = 1, reason: str = "Mailbox unavailable") -> None:
        """Make the next ``times`` sends raise."""
        self.failures_remaining = times
        self.failure_reason = reason

    def send(self, to: str, subject: str, body: str) -> str:
        if self.failures_remaining > 0:
            self.failures_remaining -= 1
            raise DeliveryError(self.failure_reason)
        message_id = f"mem-{uuid4().hex[:12]}"
        self.outbox.append({"message_id": message_id, "to": to, "subject": subject, "body": body})
        return message_id

    def sent_to(self, address: str) -> list[dict]:
        return [message for message in self.outbox if message["to"] == address]
