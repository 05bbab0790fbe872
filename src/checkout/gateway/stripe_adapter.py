"""Card processor adapter built on the stripe-python SDK.

Each gateway owns its own ``StripeClient`` so the API key never lives in the
SDK's module globals. Payments are PaymentIntents; the browser completes card
entry and 3-D Secure with the returned client secret.
"""

from collections.abc import Mapping

import stripe
import structlog

from checkout.config import Settings
from checkout.exceptions import ProviderError, SignatureError
from checkout.gateway.port import (
    CanonicalStatus,
    LineItem,
    PaymentGateway,
    PaymentProvider,
    PaymentResult,
    RefundResult,
    WebhookEvent,
    from_minor_units,
    map_status,
    to_minor_units,
)

logger = structlog.get_logger(__name__)

STATUS_MAP = {
    "requires_payment_method": CanonicalStatus.PENDING,
    "requires_confirmation": CanonicalStatus.PENDING,
    "requires_action": CanonicalStatus.PENDING,
    "processing": CanonicalStatus.PENDING,
    "requires_capture": CanonicalStatus.AUTHORIZED,
    "succeeded": CanonicalStatus.COMPLETED,
    "canceled": CanonicalStatus.CANCELLED,
}

# Webhook event types acted on; every other type is acknowledged and ignored
EVENT_STATUS_MAP = {
    "payment_intent.processing": CanonicalStatus.PENDING,
    "payment_intent.requires_action": CanonicalStatus.PENDING,
    "payment_intent.amount_capturable_updated": CanonicalStatus.AUTHORIZED,
    "payment_intent.succeeded": CanonicalStatus.COMPLETED,
    "payment_intent.canceled": CanonicalStatus.CANCELLED,
    "payment_intent.payment_failed": CanonicalStatus.FAILED,
}

SIGNATURE_HEADER = "stripe-signature"


class StripeGateway(PaymentGateway):
    provider = PaymentProvider.STRIPE

    def __init__(
        self,
        api_key: str,
        webhook_secret: str,
        timeout: float = 10.0,
        capture_method: str = "automatic",
        client=None,
    ) -> None:
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.timeout = timeout
        self.capture_method = capture_method
        self.two_phase = capture_method == "manual"
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "StripeGateway":
        return cls(
            api_key=settings.stripe_secret_key,
            webhook_secret=settings.stripe_webhook_secret,
            timeout=settings.provider_timeout_seconds,
        )

    @property
    def client(self):
        if self._client is None:
            if not self.api_key:
                raise ProviderError(self.provider.value, "Stripe is not configured (STRIPE_SECRET_KEY missing)")
            self._client = stripe.StripeClient(
                self.api_key,
                http_client=stripe.RequestsClient(timeout=self.timeout),
                max_network_retries=2,
            )
        return self._client

    def _fail(self, action: str, exc: Exception):
        raw = getattr(exc, "json_body", None) or getattr(exc, "user_message", None) or str(exc)
        logger.error("Stripe request failed", action=action, error=str(exc), raw=raw)
        return ProviderError(
            self.provider.value,
            f"Card payment {action} failed",
            raw=raw,
            status_code=getattr(exc, "http_status", None),
        )

    def _result(self, intent) -> PaymentResult:
        status = map_status(self.provider, STATUS_MAP, intent.status)
        return PaymentResult(
            success=status not in (CanonicalStatus.FAILED, CanonicalStatus.CANCELLED, CanonicalStatus.EXPIRED),
            transaction_id=intent.id,
            amount=from_minor_units(intent.amount),
            currency=str(intent.currency).lower(),
            status=status,
            client_secret=getattr(intent, "client_secret", None),
            native_status=intent.status,
        )

    # -------------------------------------------------------------------
    # Payments
    # -------------------------------------------------------------------
    def create_payment(
        self,
        amount: float,
        currency: str,
        order_reference: str,
        customer_email: str | None,
        line_items: list[LineItem] | None = None,
    ) -> PaymentResult:
        params = {
            "amount": to_minor_units(amount),
            "currency": currency.lower(),
            "automatic_payment_methods": {"enabled": True},
            "capture_method": self.capture_method,
            "metadata": {"order_reference": order_reference, "customer_email": customer_email or ""},
        }
        if customer_email:
            params["receipt_email"] = customer_email

        try:
            intent = self.client.payment_intents.create(
                params=params,
                options={"idempotency_key": f"intent-{order_reference}"},
            )
        except stripe.StripeError as exc:
            raise self._fail("creation", exc) from exc

        logger.info("Stripe payment intent created", intent_id=intent.id, order_reference=order_reference)
        return self._result(intent)

    def confirm_payment(self, transaction_id: str) -> PaymentResult:
        try:
            intent = self.client.payment_intents.retrieve(transaction_id)
        except stripe.StripeError as exc:
            raise self._fail("lookup", exc) from exc
        return self._result(intent)

    def cancel_payment(self, transaction_id: str) -> bool:
        try:
            intent = self.client.payment_intents.cancel(transaction_id)
        except stripe.StripeError as exc:
            raise self._fail("cancellation", exc) from exc
        return intent.status == "canceled"

    def capture_payment(self, transaction_id: str, amount: float, currency: str) -> PaymentResult:
        try:
            intent = self.client.payment_intents.capture(
                transaction_id,
                params={"amount_to_capture": to_minor_units(amount)},
            )
        except stripe.StripeError as exc:
            raise self._fail("capture", exc) from exc
        return self._result(intent)

    def refund_payment(self, transaction_id: str, amount: float, reason: str) -> RefundResult:
        try:
            refund = self.client.refunds.create(
                params={
                    "payment_intent": transaction_id,
                    "amount": to_minor_units(amount),
                    "metadata": {"reason": reason},
                }
            )
        except stripe.StripeError as exc:
            raise self._fail("refund", exc) from exc
        return RefundResult(
            success=refund.status in ("succeeded", "pending"),
            refund_id=refund.id,
            amount=from_minor_units(refund.amount),
            native_status=refund.status,
        )

    # -------------------------------------------------------------------
    # Webhooks
    # -------------------------------------------------------------------
    def parse_webhook(self, raw_body: bytes, headers: Mapping[str, str]) -> WebhookEvent:
        signature = headers.get(SIGNATURE_HEADER) or headers.get("Stripe-Signature")
        if not self.webhook_secret or not signature:
            raise SignatureError(self.provider.value, "Missing Stripe signature")
        try:
            event = stripe.Webhook.construct_event(raw_body, signature, self.webhook_secret)
        except stripe.SignatureVerificationError as exc:
            raise SignatureError(self.provider.value) from exc
        except ValueError as exc:
            raise SignatureError(self.provider.value, "Malformed Stripe payload") from exc

        intent = event["data"]["object"]
        event_type = event["type"]
        amount = intent.get("amount")
        return WebhookEvent(
            provider=self.provider,
            event_id=event["id"],
            event_type=event_type,
            transaction_id=intent.get("id"),
            status=EVENT_STATUS_MAP.get(event_type),
            amount=from_minor_units(amount) if amount is not None else None,
            payload={"type": event_type, "intent_status": intent.get("status")},
        )
