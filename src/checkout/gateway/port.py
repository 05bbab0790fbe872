"""Payment provider port: the one interface every provider adapter implements.

The providers disagree on nearly everything (amount units, currency casing,
status words, how a customer completes payment, whether capture is a
separate step). Adapters absorb those differences and hand the rest of the
engine a ``PaymentResult`` and a ``CanonicalStatus``.
"""

import hashlib
import hmac
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

import structlog
from protean.exceptions import ValidationError

logger = structlog.get_logger(__name__)


class PaymentProvider(Enum):
    """The closed set of supported providers."""

    STRIPE = "stripe"  # card processor
    VIPPS = "vipps"  # regional wallet
    KLARNA = "klarna"  # buy-now-pay-later checkout

    @classmethod
    def parse(cls, value) -> "PaymentProvider":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value or "").strip().lower())
        except ValueError:
            supported = ", ".join(p.value for p in cls)
            raise ValidationError({"provider": [f"Unsupported payment provider '{value}'. Use one of: {supported}"]})


class CanonicalStatus(Enum):
    PENDING = "pending"
    AUTHORIZED = "authorized"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    FAILED = "failed"


def map_status(provider: PaymentProvider, mapping: Mapping[str, CanonicalStatus], native) -> CanonicalStatus:
    """Translate a provider's native status. Anything unmapped is treated as FAILED."""
    key = str(native or "").strip().lower()
    status = mapping.get(key)
    if status is None:
        logger.warning("Unmapped provider status treated as failed", provider=provider.value, native_status=native)
        return CanonicalStatus.FAILED
    return status


_HUNDRED = Decimal(100)


def to_minor_units(amount) -> int:
    """199.99 -> 19999. Providers only ever see integers in the smallest unit."""
    return int((Decimal(str(amount)) * _HUNDRED).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def from_minor_units(amount) -> float:
    return float(Decimal(int(amount or 0)) / _HUNDRED)


def verify_hmac_signature(secret: str, raw_body: bytes, signature: str | None) -> bool:
    """Constant-time check of a hex HMAC-SHA256 over the raw request body."""
    if not secret or not signature:
        return False
    expected = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature.strip().lower())


@dataclass(frozen=True)
class LineItem:
    """An itemized order line as the BNPL provider needs it. Prices in major units."""

    reference: str
    name: str
    quantity: int
    unit_price: float
    tax_rate: int | None = None  # basis points, 2500 == 25%
    kind: str = "physical"  # or "shipping_fee"


@dataclass(frozen=True)
class PaymentResult:
    success: bool
    transaction_id: str | None
    amount: float
    currency: str
    status: CanonicalStatus
    client_secret: str | None = None
    checkout_url: str | None = None
    embedded_snippet: str | None = None
    native_status: str | None = None


@dataclass(frozen=True)
class RefundResult:
    success: bool
    refund_id: str | None
    amount: float
    native_status: str | None = None


@dataclass(frozen=True)
class WebhookEvent:
    """A verified provider callback, already translated.

    ``status`` is None for event types the engine does not act on; such
    events are acknowledged and otherwise ignored.
    """

    provider: PaymentProvider
    event_id: str
    event_type: str
    transaction_id: str | None
    status: CanonicalStatus | None
    amount: float | None = None
    payload: dict = field(default_factory=dict, compare=False, repr=False)


class PaymentGateway(ABC):
    """Abstract payment provider interface."""

    provider: PaymentProvider
    # Whether an authorized payment must be acknowledged before the provider treats it as settled
    requires_acknowledgement: bool = False
    # Whether a payment is authorized first and captured by a separate call
    two_phase: bool = False

    @abstractmethod
    def create_payment(
        self,
        amount: float,
        currency: str,
        order_reference: str,
        customer_email: str | None,
        line_items: list[LineItem] | None = None,
    ) -> PaymentResult:
        """Open a payment the customer completes on the client side."""
        ...

    @abstractmethod
    def confirm_payment(self, transaction_id: str) -> PaymentResult:
        """Re-fetch the provider's view of a payment."""
        ...

    @abstractmethod
    def cancel_payment(self, transaction_id: str) -> bool:
        """Void a payment that has not settled."""
        ...

    @abstractmethod
    def capture_payment(self, transaction_id: str, amount: float, currency: str) -> PaymentResult:
        """Settle ``amount`` of an authorized payment made in ``currency``."""
        ...

    @abstractmethod
    def refund_payment(self, transaction_id: str, amount: float, reason: str) -> RefundResult:
        """Credit part or all of a settled payment back to the customer."""
        ...

    @abstractmethod
    def parse_webhook(self, raw_body: bytes, headers: Mapping[str, str]) -> WebhookEvent:
        """Verify a callback's authenticity and translate it.

        Raises SignatureError when the callback cannot be trusted.
        """
        ...

    def acknowledge(self, transaction_id: str) -> None:  # noqa: B027
        """Tell the provider the merchant has registered an authorized payment."""
        return None
