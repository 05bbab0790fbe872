"""Configurable in-process payment provider for development and tests.

Behaves like a provider without any network: payments open in ``pending``,
confirmations report whatever status was last scripted, and webhooks are
plain JSON bodies signed with a fixed test signature. Every call is recorded
for assertions.
"""

import json
from collections.abc import Mapping
from uuid import uuid4

from protean.exceptions import ValidationError

from checkout.exceptions import ProviderError, SignatureError
from checkout.gateway.port import (
    CanonicalStatus,
    LineItem,
    PaymentGateway,
    PaymentProvider,
    PaymentResult,
    RefundResult,
    WebhookEvent,
)

TEST_SIGNATURE = "test-signature"


class FakeGateway(PaymentGateway):
    def __init__(
        self,
        provider: PaymentProvider = PaymentProvider.STRIPE,
        requires_acknowledgement: bool = False,
        requires_line_items: bool = False,
        currency: str = "nok",
    ) -> None:
        self.provider = provider
        self.currency = currency
        self.requires_acknowledgement = requires_acknowledgement
        self.requires_line_items = requires_line_items
        self.two_phase = requires_acknowledgement
        self.should_succeed: bool = True
        self.failure_reason: str = "Provider unavailable"
        self.confirmed_status: CanonicalStatus = CanonicalStatus.COMPLETED
        self.fail_acknowledgement: bool = False
        self.calls: list[dict] = []

    def configure(
        self,
        should_succeed: bool = True,
        failure_reason: str = "Provider unavailable",
        confirmed_status: CanonicalStatus = CanonicalStatus.COMPLETED,
        fail_acknowledgement: bool = False,
    ) -> None:
        """Script how the next calls behave."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.confirmed_status = confirmed_status
        self.fail_acknowledgement = fail_acknowledgement

    def calls_to(self, method: str) -> list[dict]:
        return [call for call in self.calls if call["method"] == method]

    def _record(self, method: str, **kwargs) -> None:
        self.calls.append({"method": method, **kwargs})
        if not self.should_succeed:
            raise ProviderError(self.provider.value, self.failure_reason, raw={"error": self.failure_reason})

    def create_payment(
        self,
        amount: float,
        currency: str,
        order_reference: str,
        customer_email: str | None,
        line_items: list[LineItem] | None = None,
    ) -> PaymentResult:
        if self.requires_line_items and not line_items:
            raise ValidationError({"line_items": ["This provider requires the itemized order lines"]})
        self._record(
            "create_payment",
            amount=amount,
            currency=currency,
            order_reference=order_reference,
            customer_email=customer_email,
            line_items=list(line_items or []),
        )
        transaction_id = f"fake_{self.provider.value}_{uuid4().hex[:12]}"
        return PaymentResult(
            success=True,
            transaction_id=transaction_id,
            amount=amount,
            currency=currency.lower(),
            status=CanonicalStatus.PENDING,
            client_secret=f"{transaction_id}_secret" if self.provider == PaymentProvider.STRIPE else None,
            checkout_url=f"https://wallet.test/{transaction_id}" if self.provider == PaymentProvider.VIPPS else None,
            embedded_snippet="<div id='fake-checkout'></div>" if self.provider == PaymentProvider.KLARNA else None,
            native_status="created",
        )

    def confirm_payment(self, transaction_id: str) -> PaymentResult:
        self._record("confirm_payment", transaction_id=transaction_id)
        return PaymentResult(
            success=self.confirmed_status not in (CanonicalStatus.FAILED, CanonicalStatus.CANCELLED),
            transaction_id=transaction_id,
            amount=0.0,
            currency=self.currency,
            status=self.confirmed_status,
            native_status=self.confirmed_status.value,
        )

    def cancel_payment(self, transaction_id: str) -> bool:
        self._record("cancel_payment", transaction_id=transaction_id)
        return True

    def capture_payment(self, transaction_id: str, amount: float, currency: str) -> PaymentResult:
        self._record("capture_payment", transaction_id=transaction_id, amount=amount, currency=currency)
        return PaymentResult(
            success=True,
            transaction_id=transaction_id,
            amount=amount,
            currency=currency.lower(),
            status=CanonicalStatus.COMPLETED,
            native_status="captured",
        )

    def refund_payment(self, transaction_id: str, amount: float, reason: str) -> RefundResult:
        self._record("refund_payment", transaction_id=transaction_id, amount=amount, reason=reason)
        return RefundResult(success=True, refund_id=f"fake_ref_{uuid4().hex[:12]}", amount=amount)

    def acknowledge(self, transaction_id: str) -> None:
        self.calls.append({"method": "acknowledge", "transaction_id": transaction_id})
        if self.fail_acknowledgement:
            raise ProviderError(self.provider.value, "Acknowledgement rejected")

    def parse_webhook(self, raw_body: bytes, headers: Mapping[str, str]) -> WebhookEvent:
        """Body: ``{"event_id", "event_type", "transaction_id", "status"}`` with status a canonical value."""
        if headers.get("x-webhook-signature") != TEST_SIGNATURE:
            raise SignatureError(self.provider.value)
        payload = json.loads(raw_body)
        status = payload.get("status")
        return WebhookEvent(
            provider=self.provider,
            event_id=payload.get("event_id") or uuid4().hex,
            event_type=payload.get("event_type", "status_changed"),
            transaction_id=payload.get("transaction_id"),
            status=CanonicalStatus(status) if status else None,
            amount=payload.get("amount"),
            payload=payload,
        )
