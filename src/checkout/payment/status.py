"""Canonical payment status shared by Payment and the Order that mirrors it."""

from enum import Enum


class PaymentStatus(Enum):
    PENDING = "Pending"
    AUTHORIZED = "Authorized"
    PAID = "Paid"
    CANCELLED = "Cancelled"
    FAILED = "Failed"
    REFUNDED = "Refunded"
    PARTIALLY_REFUNDED = "Partially_Refunded"


_VALID_TRANSITIONS = {
    PaymentStatus.PENDING: {
        PaymentStatus.AUTHORIZED,
        PaymentStatus.PAID,
        PaymentStatus.CANCELLED,
        PaymentStatus.FAILED,
    },
    PaymentStatus.AUTHORIZED: {PaymentStatus.PAID, PaymentStatus.CANCELLED, PaymentStatus.FAILED},
    PaymentStatus.PAID: {PaymentStatus.REFUNDED, PaymentStatus.PARTIALLY_REFUNDED},
    PaymentStatus.PARTIALLY_REFUNDED: {PaymentStatus.REFUNDED},
    PaymentStatus.CANCELLED: set(),  # Terminal
    PaymentStatus.FAILED: set(),  # Terminal
    PaymentStatus.REFUNDED: set(),  # Terminal
}


def can_transition(current: PaymentStatus, target: PaymentStatus) -> bool:
    return target in _VALID_TRANSITIONS.get(current, set())
