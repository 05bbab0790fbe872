"""Pydantic request/response schemas for the checkout API."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

# --- Request Schemas ---


class CreateCartRequest(BaseModel):
    customer_id: str | None = Field(None, max_length=255)
    session_id: str | None = Field(None, max_length=255)


class AddToCartRequest(BaseModel):
    model_config = {"json_schema_extra": {"examples": [{"product_id": "prod-omega3", "quantity": 2}]}}

    product_id: str = Field(..., max_length=255)
    quantity: int = Field(..., ge=1)


class UpdateCartItemRequest(BaseModel):
    quantity: int = Field(..., ge=1)


class AddressSchema(BaseModel):
    first_name: str = Field(..., max_length=100)
    last_name: str = Field(..., max_length=100)
    company: str | None = Field(None, max_length=255)
    street: str = Field(..., max_length=255)
    city: str = Field(..., max_length=100)
    state: str | None = Field(None, max_length=100)
    postal_code: str = Field(..., max_length=20)
    country: str = Field(..., max_length=100)


class OrderLineRequest(BaseModel):
    product_id: str = Field(..., max_length=255)
    quantity: int = Field(..., ge=1)


class PlaceOrderRequest(BaseModel):
    """Either ``cart_id`` or ``lines`` (anonymous checkout) must be given."""

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "cart_id": "0f7c5a2e-…",
                    "email": "kari.nordmann@example.no",
                    "phone": "+47 912 34 567",
                    "billing_address": {
                        "first_name": "Kari",
                        "last_name": "Nordmann",
                        "street": "Storgata 1",
                        "city": "Oslo",
                        "postal_code": "0155",
                        "country": "NO",
                    },
                }
            ]
        }
    }

    cart_id: str | None = Field(None, max_length=255)
    lines: list[OrderLineRequest] | None = None
    customer_id: str | None = Field(None, max_length=255)
    session_id: str | None = Field(None, max_length=255)
    email: str = Field(..., max_length=255)
    phone: str | None = Field(None, max_length=50)
    billing_address: AddressSchema
    shipping_address: AddressSchema | None = None
    notes: str | None = None
    discount_amount: float = Field(0.0, ge=0.0)


class CancelOrderRequest(BaseModel):
    reason: str = Field("Cancelled by customer", max_length=500)


class PaymentIntentRequest(BaseModel):
    model_config = {
        "populate_by_name": True,
        "json_schema_extra": {"examples": [{"orderId": "5d1c…", "provider": "stripe"}]},
    }

    order_id: str = Field(..., alias="orderId", max_length=255)
    provider: str = Field(..., max_length=20)


class CancelPaymentRequest(BaseModel):
    reason: str = Field("Cancelled by customer", max_length=500)


class RefundRequest(BaseModel):
    amount: float = Field(..., gt=0)
    reason: str = Field(..., min_length=1, max_length=500)


# --- Response Schemas ---


class IdResponse(BaseModel):
    id: str


class StatusResponse(BaseModel):
    status: str = "ok"


class CartItemResponse(BaseModel):
    item_id: str
    product_id: str
    quantity: int


class CartResponse(BaseModel):
    cart_id: str
    customer_id: str | None = None
    session_id: str | None = None
    status: str
    converted_order_id: str | None = None
    items: list[CartItemResponse]


class OrderPlacedResponse(BaseModel):
    order_id: str
    order_number: str


class OrderLineResponse(BaseModel):
    product_id: str
    product_name: str
    product_sku: str
    product_image: str | None = None
    quantity: int
    unit_price: float
    line_total: float


class OrderResponse(BaseModel):
    order_id: str
    order_number: str
    email: str
    status: str
    payment_status: str
    subtotal: float
    shipping_amount: float
    discount_amount: float
    total_amount: float
    currency: str
    lines: list[OrderLineResponse]
    shipping_address: dict
    billing_address: dict
    cancellation_reason: str | None = None
    created_at: datetime | None = None


class PaymentIntentResponse(BaseModel):
    payment_id: str = Field(..., serialization_alias="paymentId")
    client_secret: str | None = Field(None, serialization_alias="clientSecret")
    checkout_url: str | None = Field(None, serialization_alias="checkoutUrl")
    embedded_snippet: str | None = Field(None, serialization_alias="embeddedSnippet")
    amount: float
    currency: str


class PaymentStatusResponse(BaseModel):
    status: str
    transaction_id: str = Field(..., serialization_alias="transactionId")


class RefundResponse(BaseModel):
    refund_id: str
    status: str
    refunded_amount: float


class PaymentResponse(BaseModel):
    payment_id: str
    order_id: str
    provider: str
    transaction_id: str
    status: str
    amount: float
    currency: str
    refunded_amount: float
    confirmed_at: datetime | None = None
    acknowledged_at: datetime | None = None


class WebhookResponse(BaseModel):
    status: str
    event_type: str | None = None
