"""FastAPI endpoints for payments and provider webhooks.

Every endpoint that reaches a payment provider (or sends mail once a payment
settles) is a plain function, or hands its work to the threadpool, because
the provider clients block.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from protean.utils.globals import current_domain

from checkout.api.auth import require_admin_key
from checkout.api.schemas import (
    CancelPaymentRequest,
    PaymentIntentRequest,
    PaymentIntentResponse,
    PaymentResponse,
    PaymentStatusResponse,
    RefundRequest,
    RefundResponse,
    WebhookResponse,
)
from checkout.payment.cancellation import cancel_payment
from checkout.payment.capture import capture_payment
from checkout.payment.confirmation import confirm_payment
from checkout.payment.intent import create_payment_intent
from checkout.payment.payment import Payment
from checkout.payment.refund import refund_payment
from checkout.webhook.reconciler import handle_webhook

payment_router = APIRouter(prefix="/payments", tags=["payments"])


@payment_router.post("/intent", status_code=201, response_model=PaymentIntentResponse)
def create_intent(body: PaymentIntentRequest) -> PaymentIntentResponse:
    """Open a payment for an order with the chosen provider."""
    result = create_payment_intent(body.order_id, body.provider)
    return PaymentIntentResponse(
        payment_id=result["payment_id"],
        client_secret=result["client_secret"],
        checkout_url=result["checkout_url"],
        embedded_snippet=result["embedded_snippet"],
        amount=result["amount"],
        currency=result["currency"],
    )


@payment_router.post("/webhooks/{provider}", response_model=WebhookResponse)
async def receive_webhook(provider: str, request: Request) -> WebhookResponse:
    # The signature covers the exact bytes sent, so the body is never re-serialized
    raw_body = await request.body()
    result = await run_in_threadpool(handle_webhook, provider, raw_body, dict(request.headers))
    return WebhookResponse(status=result["status"], event_type=result.get("event_type"))


@payment_router.get("/{payment_id}", response_model=PaymentResponse)
async def get_payment(payment_id: str) -> PaymentResponse:
    payment = current_domain.repository_for(Payment).get(payment_id)
    return PaymentResponse(
        payment_id=str(payment.id),
        order_id=str(payment.order_id),
        provider=payment.provider,
        transaction_id=payment.provider_transaction_id,
        status=payment.status,
        amount=payment.amount,
        currency=payment.currency,
        refunded_amount=payment.refunded_amount or 0.0,
        confirmed_at=payment.confirmed_at,
        acknowledged_at=payment.acknowledged_at,
    )


@payment_router.post("/{payment_id}/confirm", response_model=PaymentStatusResponse)
def confirm(payment_id: str) -> PaymentStatusResponse:
    result = confirm_payment(payment_id)
    return PaymentStatusResponse(status=result["status"], transaction_id=result["transaction_id"])


@payment_router.post(
    "/{payment_id}/capture", response_model=PaymentStatusResponse, dependencies=[Depends(require_admin_key)]
)
def capture(payment_id: str) -> PaymentStatusResponse:
    result = capture_payment(payment_id)
    return PaymentStatusResponse(status=result["status"], transaction_id=result["transaction_id"])


@payment_router.post(
    "/{payment_id}/cancel", response_model=PaymentStatusResponse, dependencies=[Depends(require_admin_key)]
)
def cancel(payment_id: str, body: CancelPaymentRequest) -> PaymentStatusResponse:
    result = cancel_payment(payment_id, reason=body.reason)
    return PaymentStatusResponse(status=result["status"], transaction_id=result["transaction_id"])


@payment_router.post(
    "/{payment_id}/refunds",
    status_code=201,
    response_model=RefundResponse,
    dependencies=[Depends(require_admin_key)],
)
def refund(payment_id: str, body: RefundRequest) -> RefundResponse:
    result = refund_payment(payment_id, amount=body.amount, reason=body.reason)
    return RefundResponse(
        refund_id=result["refund_id"],
        status=result["status"],
        refunded_amount=result["refunded_amount"],
    )
