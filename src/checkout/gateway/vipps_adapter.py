"""Regional wallet adapter (Vipps eCom v2 over plain HTTP).

The customer is redirected to the wallet to approve the payment; the wallet
then reserves the amount (``authorized``) and the merchant captures it.
Every call needs a short-lived OAuth access token, which this adapter caches
on the instance and renews five minutes before it runs out.
"""

import json
import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from uuid import uuid4

import requests
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
    verify_hmac_signature,
)

logger = structlog.get_logger(__name__)

STATUS_MAP = {
    "initiated": CanonicalStatus.PENDING,
    "initiate": CanonicalStatus.PENDING,
    "register": CanonicalStatus.PENDING,
    "authorized": CanonicalStatus.AUTHORIZED,
    "reserve": CanonicalStatus.AUTHORIZED,
    "reserved": CanonicalStatus.AUTHORIZED,
    "sale": CanonicalStatus.COMPLETED,
    "capture": CanonicalStatus.COMPLETED,
    "captured": CanonicalStatus.COMPLETED,
    # Refunds are tracked on the Payment itself; the money was captured first
    "refund": CanonicalStatus.COMPLETED,
    "cancelled": CanonicalStatus.CANCELLED,
    "cancel": CanonicalStatus.CANCELLED,
    "void": CanonicalStatus.CANCELLED,
    "expired": CanonicalStatus.EXPIRED,
    "rejected": CanonicalStatus.FAILED,
    "failed": CanonicalStatus.FAILED,
}

SIGNATURE_HEADER = "x-webhook-signature"


@dataclass(frozen=True)
class AccessToken:
    value: str
    expires_at: datetime

    def is_usable(self, now: datetime, margin: timedelta) -> bool:
        return now < self.expires_at - margin


class VippsGateway(PaymentGateway):
    provider = PaymentProvider.VIPPS
    two_phase = True

    TOKEN_REFRESH_MARGIN = timedelta(minutes=5)

    def __init__(
        self,
        base_url: str,
        client_id: str,
        client_secret: str,
        subscription_key: str,
        merchant_serial_number: str,
        webhook_secret: str,
        redirect_url: str,
        callback_prefix: str,
        timeout: float = 10.0,
        currency: str = "nok",
        session: requests.Session | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.client_id = client_id
        self.client_secret = client_secret
        self.subscription_key = subscription_key
        self.merchant_serial_number = merchant_serial_number
        self.webhook_secret = webhook_secret
        self.redirect_url = redirect_url
        self.callback_prefix = callback_prefix
        self.timeout = timeout
        self.currency = currency.lower()
        self.session = session or requests.Session()
        self._clock = clock or (lambda: datetime.now(UTC))
        self._token: AccessToken | None = None
        self._token_lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> "VippsGateway":
        return cls(
            base_url=settings.vipps_base_url,
            client_id=settings.vipps_client_id,
            client_secret=settings.vipps_client_secret,
            subscription_key=settings.vipps_subscription_key,
            merchant_serial_number=settings.vipps_merchant_serial_number,
            webhook_secret=settings.vipps_webhook_secret,
            redirect_url=f"{settings.frontend_url}/payment/success",
            callback_prefix=f"{settings.api_url}/payments/webhooks/vipps",
            timeout=settings.provider_timeout_seconds,
            currency=settings.currency,
        )

    # -------------------------------------------------------------------
    # Access token
    # -------------------------------------------------------------------
    def access_token(self) -> str:
        """Return a token valid for at least the refresh margin, fetching a new one if needed."""
        with self._token_lock:
            now = self._clock()
            if self._token is None or not self._token.is_usable(now, self.TOKEN_REFRESH_MARGIN):
                self._token = self._fetch_token(now)
            return self._token.value

    def _fetch_token(self, now: datetime) -> AccessToken:
        if not (self.client_id and self.client_secret and self.subscription_key):
            raise ProviderError(self.provider.value, "Vipps is not configured (client credentials missing)")

        data = self._send(
            "POST",
            "/accesstoken/get",
            headers={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "Ocp-Apim-Subscription-Key": self.subscription_key,
                "Merchant-Serial-Number": self.merchant_serial_number,
            },
            action="authentication",
        )
        value = data.get("access_token")
        if not value:
            raise ProviderError(self.provider.value, "Vipps returned no access token", raw=data)

        expires_in = int(data.get("expires_in") or 0)
        logger.debug("Vipps access token refreshed", expires_in=expires_in)
        return AccessToken(value=value, expires_at=now + timedelta(seconds=expires_in))

    # -------------------------------------------------------------------
    # HTTP plumbing
    # -------------------------------------------------------------------
    def _send(self, method: str, path: str, headers: dict, action: str, body: dict | None = None) -> dict:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, json=body, headers=headers, timeout=self.timeout)
        except requests.RequestException as exc:
            logger.error("Vipps request failed", action=action, url=url, error=str(exc))
            raise ProviderError(self.provider.value, f"Vipps {action} failed: {exc}") from exc

        if not response.ok:
            logger.error(
                "Vipps returned an error",
                action=action,
                url=url,
                status_code=response.status_code,
                raw=response.text,
            )
            raise ProviderError(
                self.provider.value,
                f"Vipps {action} failed with HTTP {response.status_code}",
                raw=response.text,
                status_code=response.status_code,
            )

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            raise ProviderError(self.provider.value, f"Vipps {action} returned invalid JSON", raw=response.text) from exc

    def _call(self, method: str, path: str, action: str, body: dict | None = None) -> dict:
        headers = {
            "Authorization": f"Bearer {self.access_token()}",
            "Ocp-Apim-Subscription-Key": self.subscription_key,
            "Merchant-Serial-Number": self.merchant_serial_number,
            "Content-Type": "application/json",
            "X-Request-Id": uuid4().hex,
            "X-TimeStamp": self._clock().isoformat(),
        }
        return self._send(method, path, headers=headers, action=action, body=body)

    def _merchant_transaction(self, transaction_text: str, amount: float | None = None) -> dict:
        transaction = {"transactionText": transaction_text}
        if amount is not None:
            transaction["amount"] = to_minor_units(amount)
        return {
            "merchantInfo": {"merchantSerialNumber": self.merchant_serial_number},
            "transaction": transaction,
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
        body = {
            "customerInfo": {},
            "merchantInfo": {
                "merchantSerialNumber": self.merchant_serial_number,
                "callbackPrefix": self.callback_prefix,
                "fallBack": f"{self.redirect_url}?reference={order_reference}",
                "isApp": False,
            },
            "transaction": {
                "orderId": order_reference,
                "amount": to_minor_units(amount),
                "currency": currency.upper(),
                "transactionText": f"Order {order_reference}",
                "userFlow": "WEB_REDIRECT",
            },
        }
        data = self._call("POST", "/ecomm/v2/payments", action="payment creation", body=body)

        url = data.get("url")
        if not url:
            raise ProviderError(self.provider.value, "Vipps returned no redirect URL", raw=data)

        logger.info("Vipps payment initiated", order_reference=order_reference)
        return PaymentResult(
            success=True,
            transaction_id=data.get("orderId") or order_reference,
            amount=amount,
            currency=currency.lower(),
            status=CanonicalStatus.PENDING,
            checkout_url=url,
            native_status="INITIATED",
        )

    def confirm_payment(self, transaction_id: str) -> PaymentResult:
        data = self._call("GET", f"/ecomm/v2/payments/{transaction_id}/details", action="status lookup")

        info = data.get("transactionInfo") or {}
        native = info.get("status")
        if native is None:
            history = data.get("transactionLogHistory") or []
            native = history[0].get("operation") if history else None
        if native is None:
            raise ProviderError(self.provider.value, "Vipps status response had no status", raw=data)

        status = map_status(self.provider, STATUS_MAP, native)
        return PaymentResult(
            success=status not in (CanonicalStatus.FAILED, CanonicalStatus.CANCELLED, CanonicalStatus.EXPIRED),
            transaction_id=data.get("orderId") or transaction_id,
            amount=from_minor_units(info.get("amount")),
            # Details carry no currency; eCom payments are in the merchant's currency
            currency=self.currency,
            status=status,
            native_status=native,
        )

    def cancel_payment(self, transaction_id: str) -> bool:
        data = self._call(
            "PUT",
            f"/ecomm/v2/payments/{transaction_id}/cancel",
            action="cancellation",
            body=self._merchant_transaction("Order cancelled"),
        )
        native = (data.get("transactionInfo") or {}).get("status", "Cancelled")
        return map_status(self.provider, STATUS_MAP, native) == CanonicalStatus.CANCELLED

    def capture_payment(self, transaction_id: str, amount: float, currency: str) -> PaymentResult:
        data = self._call(
            "POST",
            f"/ecomm/v2/payments/{transaction_id}/capture",
            action="capture",
            body=self._merchant_transaction("Order shipped", amount),
        )
        info = data.get("transactionInfo") or {}
        native = info.get("status", "Captured")
        status = map_status(self.provider, STATUS_MAP, native)
        return PaymentResult(
            success=status == CanonicalStatus.COMPLETED,
            transaction_id=transaction_id,
            amount=from_minor_units(info.get("amount")) if info.get("amount") is not None else amount,
            currency=currency.lower(),
            status=status,
            native_status=native,
        )

    def refund_payment(self, transaction_id: str, amount: float, reason: str) -> RefundResult:
        data = self._call(
            "POST",
            f"/ecomm/v2/payments/{transaction_id}/refund",
            action="refund",
            body=self._merchant_transaction(reason, amount),
        )
        info = data.get("transactionInfo") or {}
        return RefundResult(
            success=True,
            refund_id=info.get("transactionId"),
            amount=amount,
            native_status=info.get("status"),
        )

    # -------------------------------------------------------------------
    # Webhooks
    # -------------------------------------------------------------------
    def parse_webhook(self, raw_body: bytes, headers: Mapping[str, str]) -> WebhookEvent:
        if not verify_hmac_signature(self.webhook_secret, raw_body, headers.get(SIGNATURE_HEADER)):
            raise SignatureError(self.provider.value)

        try:
            payload = json.loads(raw_body)
        except ValueError as exc:
            raise SignatureError(self.provider.value, "Malformed Vipps payload") from exc

        order_reference = payload.get("orderId")
        info = payload.get("transactionInfo") or {}
        native = info.get("status")
        status = map_status(self.provider, STATUS_MAP, native) if native else None
        amount = info.get("amount")
        return WebhookEvent(
            provider=self.provider,
            event_id=f"{order_reference}:{native}:{info.get('timeStamp') or info.get('transactionId') or ''}",
            event_type=str(native or "unknown").lower(),
            transaction_id=order_reference,
            status=status,
            amount=from_minor_units(amount) if amount is not None else None,
            payload=payload,
        )
