"""Payment aggregate (CQRS): one attempt to collect an order's total through a provider.

A Payment row is written once the provider has accepted the attempt and is
afterwards only ever advanced, never replaced, as the provider reports
progress.

State Machine:
    PENDING → AUTHORIZED → PAID → PARTIALLY_REFUNDED → REFUNDED
    PENDING → PAID                (single-phase providers)
    PENDING | AUTHORIZED → CANCELLED | FAILED

Each transition method returns False when the payment is already in the
target state, so re-applying a provider notification changes nothing.
"""

from datetime import UTC, datetime

from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, HasMany, Identifier, String, Text

from checkout.domain import checkout
from checkout.gateway.port import PaymentProvider, PaymentResult
from checkout.payment.events import (
    PaymentAcknowledged,
    PaymentAuthorized,
    PaymentCancelled,
    PaymentConfirmed,
    PaymentFailed,
    PaymentInitiated,
    PaymentRefunded,
)
from checkout.payment.status import PaymentStatus, can_transition


@checkout.entity(part_of="Payment")
class Refund:
    """Money credited back to the customer after capture."""

    amount = Float(required=True, min_value=0.01)
    reason = String(max_length=500, required=True)
    provider_refund_id = String(max_length=255)
    refunded_at = DateTime(required=True)


@checkout.aggregate
class Payment:
    order_id = Identifier(required=True)
    provider = String(max_length=20, choices=PaymentProvider, required=True)
    provider_transaction_id = String(max_length=255, required=True)
    amount = Float(required=True, min_value=0.0)
    currency = String(max_length=3, required=True)
    status = String(choices=PaymentStatus, default=PaymentStatus.PENDING.value)
    # Whatever the client needs to finish an interactive flow
    client_secret = String(max_length=500)
    checkout_url = String(max_length=2000)
    embedded_snippet = Text()
    provider_status = String(max_length=100)
    failure_reason = String(max_length=500)
    refunded_amount = Float(default=0.0)
    refunds = HasMany(Refund)
    authorized_at = DateTime()
    confirmed_at = DateTime()
    acknowledged_at = DateTime()
    cancelled_at = DateTime()
    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def initiate(cls, order_id, provider: PaymentProvider, result: PaymentResult):
        """Record a payment the provider has just opened."""
        now = datetime.now(UTC)
        payment = cls(
            order_id=order_id,
            provider=provider.value,
            provider_transaction_id=result.transaction_id,
            amount=result.amount,
            currency=result.currency.lower(),
            status=PaymentStatus.PENDING.value,
            client_secret=result.client_secret,
            checkout_url=result.checkout_url,
            embedded_snippet=result.embedded_snippet,
            provider_status=result.native_status,
            refunded_amount=0.0,
            created_at=now,
            updated_at=now,
        )
        payment.raise_(
            PaymentInitiated(
                payment_id=str(payment.id),
                order_id=str(order_id),
                provider=provider.value,
                provider_transaction_id=result.transaction_id,
                amount=result.amount,
                currency=payment.currency,
                initiated_at=now,
            )
        )
        return payment

    # -------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------
    @property
    def current_status(self) -> PaymentStatus:
        return PaymentStatus(self.status)

    def can_move_to(self, target: PaymentStatus) -> bool:
        return can_transition(self.current_status, target)

    def _move_to(self, target: PaymentStatus) -> bool:
        if self.current_status == target:
            return False
        if not self.can_move_to(target):
            raise ValidationError(
                {"status": [f"Cannot transition payment from {self.current_status.value} to {target.value}"]}
            )
        self.status = target.value
        self.updated_at = datetime.now(UTC)
        return True

    def authorize(self) -> bool:
        if not self._move_to(PaymentStatus.AUTHORIZED):
            return False
        self.authorized_at = self.updated_at
        self.raise_(
            PaymentAuthorized(payment_id=str(self.id), order_id=str(self.order_id), authorized_at=self.updated_at)
        )
        return True

    def mark_paid(self) -> bool:
        if not self._move_to(PaymentStatus.PAID):
            return False
        self.confirmed_at = self.updated_at
        self.raise_(
            PaymentConfirmed(
                payment_id=str(self.id),
                order_id=str(self.order_id),
                amount=self.amount,
                confirmed_at=self.updated_at,
            )
        )
        return True

    def cancel(self, reason=None) -> bool:
        if not self._move_to(PaymentStatus.CANCELLED):
            return False
        self.cancelled_at = self.updated_at
        self.failure_reason = reason
        self.raise_(
            PaymentCancelled(
                payment_id=str(self.id),
                order_id=str(self.order_id),
                reason=reason,
                cancelled_at=self.updated_at,
            )
        )
        return True

    def fail(self, reason) -> bool:
        if not self._move_to(PaymentStatus.FAILED):
            return False
        self.failure_reason = reason
        self.raise_(
            PaymentFailed(
                payment_id=str(self.id),
                order_id=str(self.order_id),
                reason=reason,
                failed_at=self.updated_at,
            )
        )
        return True

    def mark_acknowledged(self) -> bool:
        if self.acknowledged_at is not None:
            return False
        now = datetime.now(UTC)
        self.acknowledged_at = now
        self.updated_at = now
        self.raise_(PaymentAcknowledged(payment_id=str(self.id), acknowledged_at=now))
        return True

    @property
    def awaiting_acknowledgement(self) -> bool:
        return self.current_status == PaymentStatus.AUTHORIZED and self.acknowledged_at is None

    # -------------------------------------------------------------------
    # Refunds
    # -------------------------------------------------------------------
    @property
    def refundable_amount(self) -> float:
        return round(self.amount - (self.refunded_amount or 0.0), 2)

    def record_refund(self, amount, reason, provider_refund_id=None) -> str:
        """Register a refund the provider has accepted. Returns the refund id."""
        if self.current_status not in (PaymentStatus.PAID, PaymentStatus.PARTIALLY_REFUNDED):
            raise ValidationError({"status": ["Only paid payments can be refunded"]})
        if amount <= 0:
            raise ValidationError({"amount": ["Refund amount must be positive"]})
        if round(amount, 2) > self.refundable_amount:
            raise ValidationError(
                {"amount": [f"Refund amount {amount} exceeds refundable amount {self.refundable_amount}"]}
            )

        now = datetime.now(UTC)
        refund = Refund(amount=amount, reason=reason, provider_refund_id=provider_refund_id, refunded_at=now)
        self.add_refunds(refund)
        self.refunded_amount = round((self.refunded_amount or 0.0) + amount, 2)

        full = self.refundable_amount <= 0
        target = PaymentStatus.REFUNDED if full else PaymentStatus.PARTIALLY_REFUNDED
        if self.current_status != target:
            self._move_to(target)
        self.updated_at = now

        self.raise_(
            PaymentRefunded(
                payment_id=str(self.id),
                order_id=str(self.order_id),
                refund_id=str(refund.id),
                amount=amount,
                total_refunded=self.refunded_amount,
                is_full_refund=full,
                refunded_at=now,
            )
        )
        return str(refund.id)
