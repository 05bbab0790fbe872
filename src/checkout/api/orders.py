"""FastAPI endpoints for orders."""

import json

from fastapi import APIRouter
from protean.utils.globals import current_domain

from checkout.api.schemas import (
    CancelOrderRequest,
    OrderLineResponse,
    OrderPlacedResponse,
    OrderResponse,
    PlaceOrderRequest,
    StatusResponse,
)
from checkout.order.cancellation import CancelOrder
from checkout.order.order import CancellationActor, Order
from checkout.order.placement import PlaceOrder

order_router = APIRouter(prefix="/orders", tags=["orders"])


def order_response(order: Order) -> OrderResponse:
    pricing = order.pricing
    return OrderResponse(
        order_id=str(order.id),
        order_number=order.order_number,
        email=order.email,
        status=order.status,
        payment_status=order.payment_status,
        subtotal=pricing.subtotal,
        shipping_amount=pricing.shipping_amount,
        discount_amount=pricing.discount_amount,
        total_amount=pricing.total_amount,
        currency=pricing.currency,
        lines=[OrderLineResponse(**line.to_dict()) for line in order.ordered_lines],
        shipping_address=order.shipping_address.to_dict(),
        billing_address=order.billing_address.to_dict(),
        cancellation_reason=order.cancellation_reason,
        created_at=order.created_at,
    )


@order_router.post("", status_code=201, response_model=OrderPlacedResponse)
async def place_order(body: PlaceOrderRequest) -> OrderPlacedResponse:
    command = PlaceOrder(
        cart_id=body.cart_id,
        lines=json.dumps([line.model_dump() for line in body.lines]) if body.lines else None,
        customer_id=body.customer_id,
        session_id=body.session_id,
        email=body.email,
        phone=body.phone,
        billing_address=json.dumps(body.billing_address.model_dump()),
        shipping_address=json.dumps(body.shipping_address.model_dump()) if body.shipping_address else None,
        notes=body.notes,
        discount_amount=body.discount_amount,
    )
    result = current_domain.process(command, asynchronous=False)
    return OrderPlacedResponse(**result)


@order_router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: str) -> OrderResponse:
    return order_response(current_domain.repository_for(Order).get(order_id))


@order_router.post("/{order_id}/cancel", response_model=StatusResponse)
async def cancel_order(order_id: str, body: CancelOrderRequest) -> StatusResponse:
    """Cancel an unpaid, pending order and put its stock back."""
    command = CancelOrder(order_id=order_id, reason=body.reason, cancelled_by=CancellationActor.CUSTOMER.value)
    current_domain.process(command, asynchronous=False)
    return StatusResponse(status="cancelled")
