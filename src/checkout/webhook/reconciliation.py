"""Payment reconciliation: applies a provider-reported status to Payment and Order.

Every route by which the engine learns about a payment's progress (signed
webhooks, explicit confirmation polls, captures and cancellations it
initiated itself) ends up here, so the rules live in one place:

    pending                → nothing to do
    authorized             → Payment AUTHORIZED, Order PENDING → CONFIRMED
    completed              → Payment PAID, Order PENDING → CONFIRMED or
                             CONFIRMED → PROCESSING, confirmation email queued
    cancelled              → Payment CANCELLED, Order cancelled, stock restored
    expired | failed       → Payment FAILED, Order cancelled, stock restored

Payment, Order, restored stock, the outbox row and the webhook receipt are
all written in one Unit of Work. Re-applying a status the payment already
has changes nothing; a status the payment can no longer reach (an
``authorized`` event arriving after ``completed``) is logged and dropped.

An order can carry more than one attempt (a wallet payment abandoned for a
card). An attempt that ends while another is still open leaves the order
alone, and an attempt that settles after another already holds the money is
recorded on the Payment only.
"""

import structlog
from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from checkout.domain import checkout
from checkout.exceptions import NotFoundError
from checkout.gateway.port import CanonicalStatus, PaymentProvider
from checkout.notification.confirmation import queue_order_confirmation
from checkout.order.cancellation import restore_stock
from checkout.order.order import CancellationActor, Order, OrderStatus
from checkout.payment.payment import Payment
from checkout.payment.status import PaymentStatus
from checkout.webhook.receipt import WebhookReceipt

logger = structlog.get_logger(__name__)

_TARGETS = {
    CanonicalStatus.AUTHORIZED: PaymentStatus.AUTHORIZED,
    CanonicalStatus.COMPLETED: PaymentStatus.PAID,
    CanonicalStatus.CANCELLED: PaymentStatus.CANCELLED,
    CanonicalStatus.EXPIRED: PaymentStatus.FAILED,
    CanonicalStatus.FAILED: PaymentStatus.FAILED,
}

# Attempts that may still settle, and those already holding the customer's money
_OPEN = (PaymentStatus.PENDING, PaymentStatus.AUTHORIZED, PaymentStatus.PAID, PaymentStatus.PARTIALLY_REFUNDED)
_HOLDING_FUNDS = (PaymentStatus.AUTHORIZED, PaymentStatus.PAID, PaymentStatus.PARTIALLY_REFUNDED)


@checkout.command(part_of="Payment")
class ReconcilePayment:
    provider = String(choices=PaymentProvider, required=True)
    transaction_id = String(max_length=255, required=True)
    status = String(choices=CanonicalStatus, required=True)
    # Absent when the status was fetched rather than pushed
    event_id = String(max_length=300)
    event_type = String(max_length=100)
    source = String(max_length=20, default="webhook")
    reason = String(max_length=500)


@checkout.command(part_of="Payment")
class RecordAcknowledgement:
    payment_id = Identifier(required=True)


def _outcome(payment, duplicate=False, changed=False, notification_ids=None) -> dict:
    return {
        "payment_id": str(payment.id),
        "order_id": str(payment.order_id),
        "transaction_id": payment.provider_transaction_id,
        "payment_status": payment.status,
        "duplicate": duplicate,
        "changed": changed,
        "awaiting_acknowledgement": payment.awaiting_acknowledgement,
        "notification_ids": notification_ids or [],
    }


def _cancel_order(order: Order, reason: str) -> None:
    if OrderStatus(order.status) not in (OrderStatus.PENDING, OrderStatus.CONFIRMED):
        logger.warning(
            "Payment ended but order is past cancellation",
            order_id=str(order.id),
            order_status=order.status,
        )
        return
    order.cancel(reason=reason, cancelled_by=CancellationActor.PAYMENT_PROVIDER.value)
    restored = restore_stock(order)
    logger.info("Order cancelled by payment provider", order_id=str(order.id), restored=restored)


def _advance_order_on_payment(order: Order) -> bool:
    """Move the order forward once money has settled. Returns True if it is still live."""
    current = OrderStatus(order.status)
    if current == OrderStatus.PENDING:
        order.confirm()
    elif current == OrderStatus.CONFIRMED:
        order.start_processing()
    elif current == OrderStatus.CANCELLED:
        logger.warning("Payment settled for a cancelled order", order_id=str(order.id))
        return False
    return True


@checkout.command_handler(part_of=Payment)
class ReconcilePaymentHandler:
    @handle(ReconcilePayment)
    def reconcile(self, command):
        payment_repo = current_domain.repository_for(Payment)
        receipt_repo = current_domain.repository_for(WebhookReceipt)

        payment = payment_repo.find_by_provider_transaction(command.provider, command.transaction_id)
        if payment is None:
            raise NotFoundError(
                {"transaction_id": [f"No {command.provider} payment with transaction id {command.transaction_id}"]}
            )

        if command.event_id and receipt_repo.find(command.provider, command.event_id) is not None:
            logger.info(
                "Duplicate webhook event ignored",
                provider=command.provider,
                event_id=command.event_id,
                payment_id=str(payment.id),
            )
            return _outcome(payment, duplicate=True)

        order_repo = current_domain.repository_for(Order)
        order = order_repo.get(payment.order_id)

        canonical = CanonicalStatus(command.status)
        target = _TARGETS.get(canonical)

        # An order may carry several attempts; only the one it is waiting on drives it
        others = [p.current_status for p in payment_repo.for_order(order.id) if str(p.id) != str(payment.id)]
        if target in (PaymentStatus.AUTHORIZED, PaymentStatus.PAID):
            superseded = any(status in _HOLDING_FUNDS for status in others)
        else:
            superseded = any(status in _OPEN for status in others)

        changed = False
        notification_ids = []

        if target is None:
            logger.debug("Pending status needs no action", payment_id=str(payment.id))
        elif payment.current_status != target and not payment.can_move_to(target):
            logger.warning(
                "Ignoring status the payment can no longer reach",
                payment_id=str(payment.id),
                current=payment.status,
                reported=canonical.value,
                source=command.source,
            )
        elif target == PaymentStatus.AUTHORIZED:
            changed = payment.authorize()
            if changed and not superseded and OrderStatus(order.status) == OrderStatus.PENDING:
                order.confirm()
        elif target == PaymentStatus.PAID:
            changed = payment.mark_paid()
            if changed and superseded:
                logger.warning(
                    "Second payment settled for an order already paid",
                    payment_id=str(payment.id),
                    order_id=str(order.id),
                )
            elif changed and _advance_order_on_payment(order):
                notification = queue_order_confirmation(order)
                if notification is not None:
                    notification_ids.append(str(notification.id))
        elif target == PaymentStatus.CANCELLED:
            changed = payment.cancel(reason=command.reason or "Cancelled at provider")
            if changed and not superseded:
                _cancel_order(order, payment.failure_reason)
        else:
            changed = payment.fail(reason=command.reason or f"Provider reported {canonical.value}")
            if changed and not superseded:
                _cancel_order(order, payment.failure_reason)

        if changed and superseded:
            logger.info(
                "Order left to its other payment attempt",
                payment_id=str(payment.id),
                order_id=str(order.id),
                payment_status=payment.status,
            )
            payment_repo.add(payment)
        elif changed:
            order.record_payment_status(payment.current_status)
            payment_repo.add(payment)
            order_repo.add(order)

        if command.event_id:
            receipt_repo.add(
                WebhookReceipt.record(
                    provider=command.provider,
                    event_id=command.event_id,
                    event_type=command.event_type,
                    transaction_id=command.transaction_id,
                    canonical_status=canonical.value,
                    outcome="applied" if changed else "unchanged",
                )
            )

        logger.info(
            "Payment reconciled",
            payment_id=str(payment.id),
            order_id=str(order.id),
            reported=canonical.value,
            payment_status=payment.status,
            order_status=order.status,
            changed=changed,
            source=command.source,
        )
        return _outcome(payment, changed=changed, notification_ids=notification_ids)

    @handle(RecordAcknowledgement)
    def record_acknowledgement(self, command):
        repo = current_domain.repository_for(Payment)
        payment = repo.get(command.payment_id)
        if payment.mark_acknowledged():
            repo.add(payment)
            logger.info("Payment acknowledged at provider", payment_id=str(payment.id))
