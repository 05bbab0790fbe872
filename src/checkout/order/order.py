"""Order aggregate (CQRS): a durable record of what was bought, for how much.

An Order is created together with its lines inside the same transaction that
takes the stock. Everything a customer or the confirmation email needs to see
later (names, SKUs, images, unit prices, addresses) is copied in at that
moment and never re-read from the catalog or the customer profile.

State Machine:
    PENDING → CONFIRMED → PROCESSING
    PENDING | CONFIRMED → CANCELLED

``payment_status`` mirrors the canonical status of the order's Payment.
"""

import json
from collections import OrderedDict
from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import (
    Boolean,
    DateTime,
    Float,
    HasMany,
    Identifier,
    Integer,
    String,
    Text,
    ValueObject,
)

from checkout.domain import checkout
from checkout.order.events import (
    OrderCancelled,
    OrderConfirmed,
    OrderPaymentStatusChanged,
    OrderPlaced,
    OrderProcessingStarted,
)
from checkout.payment.status import PaymentStatus


class OrderStatus(Enum):
    PENDING = "Pending"
    CONFIRMED = "Confirmed"
    PROCESSING = "Processing"
    CANCELLED = "Cancelled"


class CancellationActor(Enum):
    CUSTOMER = "Customer"
    ADMIN = "Admin"
    PAYMENT_PROVIDER = "PaymentProvider"


_VALID_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: set(),  # Fulfillment takes over from here
    OrderStatus.CANCELLED: set(),  # Terminal
}


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@checkout.value_object(part_of="Order")
class Address:
    """A billing or shipping address as it was given at checkout."""

    first_name = String(required=True, max_length=100)
    last_name = String(required=True, max_length=100)
    company = String(max_length=255)
    street = String(required=True, max_length=255)
    city = String(required=True, max_length=100)
    state = String(max_length=100)
    postal_code = String(required=True, max_length=20)
    country = String(required=True, max_length=100)

    def to_dict(self) -> dict:
        return {
            "first_name": self.first_name,
            "last_name": self.last_name,
            "company": self.company,
            "street": self.street,
            "city": self.city,
            "state": self.state,
            "postal_code": self.postal_code,
            "country": self.country,
        }


@checkout.value_object(part_of="Order")
class OrderPricing:
    """Amounts locked at checkout. Later catalog price changes never touch them."""

    subtotal = Float(default=0.0)
    shipping_amount = Float(default=0.0)
    discount_amount = Float(default=0.0)
    total_amount = Float(default=0.0)
    currency = String(max_length=3, default="nok")


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@checkout.entity(part_of="Order")
class OrderLine:
    """One purchased product with its price and catalog details at time of purchase.

    ``stock_allocation`` records exactly which simple products gave up how
    many units for this line (components, for a bundle), so a cancellation
    can put back precisely what was taken.
    """

    product_id = Identifier(required=True)
    product_name = String(required=True, max_length=255)
    product_sku = String(required=True, max_length=100)
    product_image = String(max_length=1000)
    is_bundle = Boolean(default=False)
    quantity = Integer(required=True, min_value=1)
    unit_price = Float(required=True, min_value=0.0)
    line_total = Float(required=True, min_value=0.0)
    position = Integer(default=0)
    stock_allocation = Text()  # JSON {product_id: quantity}

    def to_dict(self) -> dict:
        return {
            "product_id": str(self.product_id),
            "product_name": self.product_name,
            "product_sku": self.product_sku,
            "product_image": self.product_image,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "line_total": self.line_total,
        }


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@checkout.aggregate
class Order:
    order_number = String(required=True, max_length=50, unique=True)
    customer_id = Identifier()
    session_id = String(max_length=255)
    cart_id = Identifier()
    email = String(required=True, max_length=255)
    phone = String(max_length=50)
    billing_address = ValueObject(Address)
    shipping_address = ValueObject(Address)
    notes = Text()
    status = String(choices=OrderStatus, default=OrderStatus.PENDING.value)
    payment_status = String(choices=PaymentStatus, default=PaymentStatus.PENDING.value)
    pricing = ValueObject(OrderPricing)
    lines = HasMany(OrderLine)
    cancellation_reason = String(max_length=500)
    cancelled_by = String(choices=CancellationActor)
    created_at = DateTime()
    updated_at = DateTime()
    confirmed_at = DateTime()
    cancelled_at = DateTime()

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def place(
        cls,
        order_number,
        email,
        billing_address,
        lines_data,
        pricing,
        shipping_address=None,
        phone=None,
        customer_id=None,
        session_id=None,
        cart_id=None,
        notes=None,
    ):
        """Create a PENDING order.

        Args:
            billing_address / shipping_address: address dicts; shipping falls back to billing.
            lines_data: dicts with product_id, product_name, product_sku, product_image,
                is_bundle, quantity, unit_price, line_total and stock_allocation (dict).
            pricing: dict from ``checkout.order.pricing.price_order``.
        """
        if not lines_data:
            raise ValidationError({"lines": ["An order needs at least one line"]})

        now = datetime.now(UTC)
        order = cls(
            order_number=order_number,
            email=email,
            phone=phone,
            customer_id=customer_id,
            session_id=session_id,
            cart_id=cart_id,
            billing_address=Address(**billing_address),
            shipping_address=Address(**(shipping_address or billing_address)),
            notes=notes,
            status=OrderStatus.PENDING.value,
            payment_status=PaymentStatus.PENDING.value,
            pricing=OrderPricing(**pricing),
            created_at=now,
            updated_at=now,
        )

        for position, line in enumerate(lines_data):
            order.add_lines(
                OrderLine(
                    product_id=line["product_id"],
                    product_name=line["product_name"],
                    product_sku=line["product_sku"],
                    product_image=line.get("product_image"),
                    is_bundle=line.get("is_bundle", False),
                    quantity=line["quantity"],
                    unit_price=line["unit_price"],
                    line_total=line["line_total"],
                    position=position,
                    stock_allocation=json.dumps(line.get("stock_allocation") or {}),
                )
            )

        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                order_number=order_number,
                customer_id=str(customer_id) if customer_id else None,
                email=email,
                lines=json.dumps([line.to_dict() for line in order.ordered_lines]),
                subtotal=pricing["subtotal"],
                shipping_amount=pricing["shipping_amount"],
                discount_amount=pricing.get("discount_amount", 0.0),
                total_amount=pricing["total_amount"],
                currency=pricing["currency"],
                placed_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @property
    def ordered_lines(self) -> list:
        return sorted(self.lines, key=lambda line: line.position or 0)

    def stock_allocation(self) -> "OrderedDict[str, int]":
        """Units taken from each simple product across all lines."""
        totals: OrderedDict[str, int] = OrderedDict()
        for line in self.ordered_lines:
            for product_id, quantity in json.loads(line.stock_allocation or "{}").items():
                totals[product_id] = totals.get(product_id, 0) + int(quantity)
        return totals

    # -------------------------------------------------------------------
    # State transitions
    # -------------------------------------------------------------------
    def _assert_can_transition(self, target_status):
        current = OrderStatus(self.status)
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise ValidationError({"status": [f"Cannot transition from {current.value} to {target_status.value}"]})

    def confirm(self):
        self._assert_can_transition(OrderStatus.CONFIRMED)
        now = datetime.now(UTC)
        self.status = OrderStatus.CONFIRMED.value
        self.confirmed_at = now
        self.updated_at = now
        self.raise_(OrderConfirmed(order_id=str(self.id), order_number=self.order_number, confirmed_at=now))

    def start_processing(self):
        self._assert_can_transition(OrderStatus.PROCESSING)
        now = datetime.now(UTC)
        self.status = OrderStatus.PROCESSING.value
        self.updated_at = now
        self.raise_(OrderProcessingStarted(order_id=str(self.id), started_at=now))

    def cancel(self, reason, cancelled_by=CancellationActor.CUSTOMER.value):
        """Cancel the order.

        Customers and admins may only cancel before any money has moved:
        the order is PENDING and its payment is still PENDING. The payment
        provider may also cancel an order whose payment was authorized and
        then voided, expired or failed.
        """
        current = OrderStatus(self.status)
        if CancellationActor(cancelled_by) != CancellationActor.PAYMENT_PROVIDER:
            if current != OrderStatus.PENDING or PaymentStatus(self.payment_status) != PaymentStatus.PENDING:
                raise ValidationError(
                    {
                        "status": [
                            f"Cannot cancel order in {current.value} state with payment "
                            f"{self.payment_status}. Only pending, unpaid orders can be cancelled"
                        ]
                    }
                )
        self._assert_can_transition(OrderStatus.CANCELLED)

        now = datetime.now(UTC)
        self.status = OrderStatus.CANCELLED.value
        self.cancellation_reason = reason
        self.cancelled_by = cancelled_by
        self.cancelled_at = now
        self.updated_at = now
        self.raise_(
            OrderCancelled(
                order_id=str(self.id),
                order_number=self.order_number,
                reason=reason,
                cancelled_by=cancelled_by,
                restored_stock=json.dumps(self.stock_allocation()),
                cancelled_at=now,
            )
        )

    def record_payment_status(self, new_status: PaymentStatus):
        """Mirror the Payment's canonical status. Re-recording the same status does nothing."""
        previous = PaymentStatus(self.payment_status)
        if previous == new_status:
            return

        now = datetime.now(UTC)
        self.payment_status = new_status.value
        self.updated_at = now
        self.raise_(
            OrderPaymentStatusChanged(
                order_id=str(self.id),
                previous_status=previous.value,
                new_status=new_status.value,
                changed_at=now,
            )
        )
