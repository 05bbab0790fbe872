"""Error taxonomy of the checkout engine.

Bad input and missing records use Protean's own ``ValidationError`` and
``ObjectNotFoundError``, which aggregates and repositories already raise.
The classes below cover what the framework has no word for. Each one maps
to a single HTTP status in ``checkout.api.errors``.
"""

from protean.exceptions import ObjectNotFoundError, ValidationError


class CheckoutError(Exception):
    """Base class for errors raised by the checkout engine itself."""

    code = "CHECKOUT_ERROR"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class InsufficientStockError(ValidationError):
    """Requested quantity exceeds what the named product has on hand."""

    code = "INSUFFICIENT_STOCK"

    def __init__(self, product_name: str, requested: int | None = None, available: int | None = None):
        self.product_name = product_name
        self.requested = requested
        self.available = available
        super().__init__({"quantity": [f"insufficient stock for {product_name}"]})

    def __str__(self) -> str:
        return f"insufficient stock for {self.product_name}"


class NotFoundError(ObjectNotFoundError):
    """A record addressed by an external reference (e.g. a provider transaction id) does not exist."""

    code = "NOT_FOUND"


class ConflictError(CheckoutError):
    code = "CONFLICT"


class UnauthorizedError(CheckoutError):
    code = "UNAUTHORIZED"


class ProviderError(CheckoutError):
    """The external payment API failed or answered with an unexpected shape.

    ``raw`` keeps whatever the provider sent back so it can be logged for
    diagnosis; it is never returned to API clients.
    """

    code = "PROVIDER_ERROR"

    def __init__(self, provider: str, message: str, raw=None, status_code: int | None = None):
        super().__init__(message, details={"provider": provider})
        self.provider = provider
        self.raw = raw
        self.status_code = status_code


class SignatureError(CheckoutError):
    """Webhook authenticity check failed."""

    code = "INVALID_SIGNATURE"

    def __init__(self, provider: str, message: str = "Invalid webhook signature"):
        super().__init__(message, details={"provider": provider})
        self.provider = provider
