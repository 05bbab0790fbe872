"""Email channel port."""

from abc import ABC, abstractmethod


class EmailSender(ABC):
    """Delivers one plain-text email.

    Implementations return the transport's message id and raise on any
    delivery failure; the outbox turns the exception into a retry.
    """

    @abstractmethod
    def send(self, to: str, subject: str, body: str) -> str: ...
