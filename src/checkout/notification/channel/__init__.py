"""Email sender registry.

A single process-wide sender, the logging one unless something else has
been installed with ``set_email_sender``.
"""

from checkout.notification.channel.log_sender import LogEmailSender
from checkout.notification.channel.port import EmailSender

_sender: EmailSender | None = None


def get_email_sender() -> EmailSender:
    global _sender
    if _sender is None:
        _sender = LogEmailSender()
    return _sender


def set_email_sender(sender: EmailSender) -> None:
    global _sender
    _sender = sender


def reset_email_sender() -> None:
    global _sender
    _sender = None
