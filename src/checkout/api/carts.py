"""FastAPI endpoints for shopping carts."""

from fastapi import APIRouter
from protean.utils.globals import current_domain

from checkout.api.schemas import (
    AddToCartRequest,
    CartItemResponse,
    CartResponse,
    CreateCartRequest,
    IdResponse,
    StatusResponse,
    UpdateCartItemRequest,
)
from checkout.cart.cart import ShoppingCart
from checkout.cart.items import AddToCart, CreateCart, RemoveFromCart, UpdateCartQuantity

cart_router = APIRouter(prefix="/carts", tags=["carts"])


def _cart_response(cart: ShoppingCart) -> CartResponse:
    return CartResponse(
        cart_id=str(cart.id),
        customer_id=str(cart.customer_id) if cart.customer_id else None,
        session_id=cart.session_id,
        status=cart.status,
        converted_order_id=str(cart.converted_order_id) if cart.converted_order_id else None,
        items=[
            CartItemResponse(item_id=str(item.id), product_id=str(item.product_id), quantity=item.quantity)
            for item in cart.items
        ],
    )


@cart_router.post("", status_code=201, response_model=IdResponse)
async def create_cart(body: CreateCartRequest) -> IdResponse:
    command = CreateCart(customer_id=body.customer_id, session_id=body.session_id)
    cart_id = current_domain.process(command, asynchronous=False)
    return IdResponse(id=cart_id)


@cart_router.get("/{cart_id}", response_model=CartResponse)
async def get_cart(cart_id: str) -> CartResponse:
    cart = current_domain.repository_for(ShoppingCart).get(cart_id)
    return _cart_response(cart)


@cart_router.post("/{cart_id}/items", status_code=201, response_model=StatusResponse)
async def add_to_cart(cart_id: str, body: AddToCartRequest) -> StatusResponse:
    """Add a product; quantities for a product already in the cart are merged."""
    command = AddToCart(cart_id=cart_id, product_id=body.product_id, quantity=body.quantity)
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


@cart_router.put("/{cart_id}/items/{item_id}", response_model=StatusResponse)
async def update_cart_item(cart_id: str, item_id: str, body: UpdateCartItemRequest) -> StatusResponse:
    command = UpdateCartQuantity(cart_id=cart_id, item_id=item_id, new_quantity=body.quantity)
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


@cart_router.delete("/{cart_id}/items/{item_id}", response_model=StatusResponse)
async def remove_cart_item(cart_id: str, item_id: str) -> StatusResponse:
    command = RemoveFromCart(cart_id=cart_id, item_id=item_id)
    current_domain.process(command, asynchronous=False)
    return StatusResponse()
