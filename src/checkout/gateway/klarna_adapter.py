"""Buy-now-pay-later adapter (Klarna Checkout v3 + Order Management).

Klarna differs from the other providers in two ways that the rest of the
engine must not paper over:

* It needs the full itemized order (lines with unit price, tax rate and tax
  amount) up front, and renders its own checkout as an embeddable HTML
  snippet instead of a redirect or client secret.
* Completing checkout only *authorizes* the money. The merchant acknowledges
  the order, then captures (or cancels, or refunds) through the separate
  Order Management API.

Push callbacks only say "something happened to order X", so the current
status is always read back from Order Management.
"""

import json
from collections.abc import Mapping

import requests
import structlog
from protean.exceptions import ValidationError
from requests.auth import HTTPBasicAuth

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
    verify_hmac_signature,
)

logger = structlog.get_logger(__name__)

STATUS_MAP = {
    "checkout_incomplete": CanonicalStatus.PENDING,
    "checkout_complete": CanonicalStatus.AUTHORIZED,
    "authorized": CanonicalStatus.AUTHORIZED,
    # Partly captured orders still hold an open authorization for the rest
    "part_captured": CanonicalStatus.AUTHORIZED,
    "captured": CanonicalStatus.COMPLETED,
    "cancelled": CanonicalStatus.CANCELLED,
    # Klarna closes orders whose remaining authorization was released
    "closed": CanonicalStatus.CANCELLED,
    "expired": CanonicalStatus.EXPIRED,
}

SIGNATURE_HEADER = "x-webhook-signature"


class KlarnaGateway(PaymentGateway):
    provider = PaymentProvider.KLARNA
    requires_acknowledgement = True
    two_phase = True

    def __init__(
        self,
        base_url: str,
        username: str,
        password: str,
        webhook_secret: str,
        merchant_urls: dict,
        purchase_country: str = "NO",
        locale: str = "nb-NO",
        default_tax_rate: int = 2500,
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.username = username
        self.password = password
        self.webhook_secret = webhook_secret
        self.merchant_urls = merchant_urls
        self.purchase_country = purchase_country
        self.locale = locale
        self.default_tax_rate = default_tax_rate
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_settings(cls, settings: Settings) -> "KlarnaGateway":
        return cls(
            base_url=settings.klarna_base_url,
            username=settings.klarna_username,
            password=settings.klarna_password,
            webhook_secret=settings.klarna_webhook_secret,
            merchant_urls={
                "terms": f"{settings.frontend_url}/terms",
                "checkout": f"{settings.frontend_url}/checkout",
                "confirmation": f"{settings.frontend_url}/payment/success",
                "push": f"{settings.api_url}/payments/webhooks/klarna",
            },
            purchase_country=settings.klarna_purchase_country,
            locale=settings.klarna_locale,
            default_tax_rate=settings.klarna_default_tax_rate,
            timeout=settings.provider_timeout_seconds,
        )

    # -------------------------------------------------------------------
    # HTTP plumbing
    # -------------------------------------------------------------------
    def _call(self, method: str, path: str, action: str, body: dict | None = None, allow_missing: bool = False):
        if not (self.username and self.password):
            raise ProviderError(self.provider.value, "Klarna is not configured (API credentials missing)")

        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(
                method,
                url,
                json=body,
                auth=HTTPBasicAuth(self.username, self.password),
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.error("Klarna request failed", action=action, url=url, error=str(exc))
            raise ProviderError(self.provider.value, f"Klarna {action} failed: {exc}") from exc

        if allow_missing and response.status_code == 404:
            return None
        if not response.ok:
            logger.error(
                "Klarna returned an error",
                action=action,
                url=url,
                status_code=response.status_code,
                raw=response.text,
            )
            raise ProviderError(
                self.provider.value,
                f"Klarna {action} failed with HTTP {response.status_code}",
                raw=response.text,
                status_code=response.status_code,
            )

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            raise ProviderError(self.provider.value, f"Klarna {action} returned invalid JSON", raw=response.text) from exc

    # -------------------------------------------------------------------
    # Order lines
    # -------------------------------------------------------------------
    def build_order_line(self, item: LineItem) -> dict:
        unit_price = to_minor_units(item.unit_price)
        tax_rate = item.tax_rate if item.tax_rate is not None else self.default_tax_rate
        total_amount = unit_price * item.quantity
        return {
            "type": item.kind,
            "reference": item.reference,
            "name": item.name,
            "quantity": item.quantity,
            "unit_price": unit_price,
            "tax_rate": tax_rate,
            "total_amount": total_amount,
            "total_tax_amount": round(total_amount * tax_rate / 10000),
        }

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
        if not line_items:
            raise ValidationError({"line_items": ["Klarna checkout requires the itemized order lines"]})

        order_lines = [self.build_order_line(item) for item in line_items]
        order_amount = sum(line["total_amount"] for line in order_lines)
        if order_amount != to_minor_units(amount):
            raise ValidationError(
                {"line_items": [f"Order lines add up to {from_minor_units(order_amount)}, expected {amount}"]}
            )

        body = {
            "purchase_country": self.purchase_country,
            "purchase_currency": currency.upper(),
            "locale": self.locale,
            "order_amount": order_amount,
            "order_tax_amount": sum(line["total_tax_amount"] for line in order_lines),
            "order_lines": order_lines,
            "merchant_reference1": order_reference,
            "merchant_urls": self.merchant_urls,
        }
        if customer_email:
            body["billing_address"] = {"email": customer_email}

        data = self._call("POST", "/checkout/v3/orders", action="checkout creation", body=body)
        if not data.get("order_id") or not data.get("html_snippet"):
            raise ProviderError(self.provider.value, "Klarna checkout response missing order id or snippet", raw=data)

        logger.info("Klarna checkout created", klarna_order_id=data["order_id"], order_reference=order_reference)
        return PaymentResult(
            success=True,
            transaction_id=data["order_id"],
            amount=from_minor_units(data.get("order_amount", order_amount)),
            currency=currency.lower(),
            status=map_status(self.provider, STATUS_MAP, data.get("status", "checkout_incomplete")),
            embedded_snippet=data["html_snippet"],
            native_status=data.get("status"),
        )

    def fetch_status(self, transaction_id: str) -> tuple[str, dict]:
        """Native status of an order: Order Management once it exists there, Checkout before that."""
        data = self._call(
            "GET", f"/ordermanagement/v1/orders/{transaction_id}", action="order lookup", allow_missing=True
        )
        if data is None:
            data = self._call("GET", f"/checkout/v3/orders/{transaction_id}", action="checkout lookup")
        native = data.get("status")
        if not native:
            raise ProviderError(self.provider.value, "Klarna order response had no status", raw=data)
        return native, data

    def confirm_payment(self, transaction_id: str) -> PaymentResult:
        native, data = self.fetch_status(transaction_id)
        status = map_status(self.provider, STATUS_MAP, native)
        return PaymentResult(
            success=status not in (CanonicalStatus.FAILED, CanonicalStatus.CANCELLED, CanonicalStatus.EXPIRED),
            transaction_id=transaction_id,
            amount=from_minor_units(data.get("order_amount")),
            currency=str(data.get("purchase_currency", "nok")).lower(),
            status=status,
            native_status=native,
        )

    def acknowledge(self, transaction_id: str) -> None:
        self._call("POST", f"/ordermanagement/v1/orders/{transaction_id}/acknowledge", action="acknowledgement")
        logger.info("Klarna order acknowledged", klarna_order_id=transaction_id)

    def cancel_payment(self, transaction_id: str) -> bool:
        # Only an authorized, uncaptured order can be cancelled; callers check that first
        self._call("POST", f"/ordermanagement/v1/orders/{transaction_id}/cancel", action="cancellation")
        return True

    def capture_payment(self, transaction_id: str, amount: float, currency: str) -> PaymentResult:
        self._call(
            "POST",
            f"/ordermanagement/v1/orders/{transaction_id}/captures",
            action="capture",
            body={"captured_amount": to_minor_units(amount), "description": "Order shipped"},
        )
        return PaymentResult(
            success=True,
            transaction_id=transaction_id,
            amount=amount,
            currency=currency.lower(),
            status=CanonicalStatus.COMPLETED,
            native_status="CAPTURED",
        )

    def refund_payment(self, transaction_id: str, amount: float, reason: str) -> RefundResult:
        self._call(
            "POST",
            f"/ordermanagement/v1/orders/{transaction_id}/refunds",
            action="refund",
            body={"refunded_amount": to_minor_units(amount), "description": reason},
        )
        return RefundResult(success=True, refund_id=None, amount=amount, native_status="REFUNDED")

    # -------------------------------------------------------------------
    # Webhooks
    # -------------------------------------------------------------------
    def parse_webhook(self, raw_body: bytes, headers: Mapping[str, str]) -> WebhookEvent:
        if not verify_hmac_signature(self.webhook_secret, raw_body, headers.get(SIGNATURE_HEADER)):
            raise SignatureError(self.provider.value)

        try:
            payload = json.loads(raw_body)
        except ValueError as exc:
            raise SignatureError(self.provider.value, "Malformed Klarna payload") from exc

        klarna_order_id = payload.get("order_id")
        if not klarna_order_id:
            raise ValidationError({"order_id": ["Klarna push without order_id"]})

        native, data = self.fetch_status(klarna_order_id)
        event_type = payload.get("event_type") or "push"
        return WebhookEvent(
            provider=self.provider,
            event_id=payload.get("event_id") or f"{klarna_order_id}:{event_type}:{native}".lower(),
            event_type=event_type,
            transaction_id=klarna_order_id,
            status=map_status(self.provider, STATUS_MAP, native),
            amount=from_minor_units(data.get("order_amount")) if data.get("order_amount") is not None else None,
            payload=payload,
        )
