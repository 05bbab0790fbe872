"""Repository for the Payment aggregate."""

from checkout.domain import checkout
from checkout.payment.payment import Payment


@checkout.repository(part_of=Payment)
class PaymentRepository:
    """Adds lookups by the identifiers providers and orders know payments by."""

    def find_by_provider_transaction(self, provider: str, transaction_id: str) -> Payment | None:
        """Find a payment by the provider's own id for it."""
        results = self._dao.query.filter(provider=provider, provider_transaction_id=transaction_id).all().items
        return results[0] if results else None

    def for_order(self, order_id: str) -> list[Payment]:
        return self._dao.query.filter(order_id=str(order_id)).all().items
