"""Domain events for the Payment aggregate."""

from protean.fields import Boolean, DateTime, Float, Identifier, String

from checkout.domain import checkout


@checkout.event(part_of="Payment")
class PaymentInitiated:
    __version__ = 1

    payment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    provider = String(required=True)
    provider_transaction_id = String(required=True)
    amount = Float(required=True)
    currency = String(required=True)
    initiated_at = DateTime(required=True)


@checkout.event(part_of="Payment")
class PaymentAuthorized:
    __version__ = 1

    payment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    authorized_at = DateTime(required=True)


@checkout.event(part_of="Payment")
class PaymentConfirmed:
    """Funds are settled: the payment is PAID."""

    __version__ = 1

    payment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    amount = Float(required=True)
    confirmed_at = DateTime(required=True)


@checkout.event(part_of="Payment")
class PaymentCancelled:
    __version__ = 1

    payment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    reason = String()
    cancelled_at = DateTime(required=True)


@checkout.event(part_of="Payment")
class PaymentFailed:
    __version__ = 1

    payment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    reason = String(required=True)
    failed_at = DateTime(required=True)


@checkout.event(part_of="Payment")
class PaymentRefunded:
    __version__ = 1

    payment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    refund_id = Identifier(required=True)
    amount = Float(required=True)
    total_refunded = Float(required=True)
    is_full_refund = Boolean(default=False)
    refunded_at = DateTime(required=True)


@checkout.event(part_of="Payment")
class PaymentAcknowledged:
    __version__ = 1

    payment_id = Identifier(required=True)
    acknowledged_at = DateTime(required=True)
