"""Order cancellation: command and handler (cancelOrder).

Cancellation and stock restoration share one Unit of Work. Restoration puts
back exactly what each line recorded taking at checkout, so later changes to
a bundle's composition cannot skew the counters.
"""

import structlog
from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from checkout.domain import checkout
from checkout.inventory.accessor import InventoryAccessor
from checkout.order.order import CancellationActor, Order

logger = structlog.get_logger(__name__)


@checkout.command(part_of="Order")
class CancelOrder:
    order_id = Identifier(required=True)
    reason = String(max_length=500, default="Cancelled by customer")
    cancelled_by = String(choices=CancellationActor, default=CancellationActor.CUSTOMER.value)


def restore_stock(order: Order, accessor: InventoryAccessor | None = None) -> dict:
    """Give every unit this order took back to its product. Returns what was restored."""
    accessor = accessor or InventoryAccessor()
    restored = order.stock_allocation()
    for product_id, quantity in restored.items():
        if quantity > 0:
            accessor.increment(product_id, quantity)
    return dict(restored)


@checkout.command_handler(part_of=Order)
class CancelOrderHandler:
    @handle(CancelOrder)
    def cancel_order(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)

        order.cancel(
            reason=command.reason or "Cancelled by customer",
            cancelled_by=command.cancelled_by or CancellationActor.CUSTOMER.value,
        )
        restored = restore_stock(order)
        repo.add(order)

        logger.info(
            "Order cancelled",
            order_id=str(order.id),
            order_number=order.order_number,
            restored=restored,
        )
