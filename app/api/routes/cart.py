"""
Cart routes

Persisted carts for registered customers. PUT merges the client cart into
the stored one (larger quantity wins) and drops unavailable products.
"""
from fastapi import APIRouter, Depends

from app.api.deps import get_cart_service
from app.schemas.cart import CartItemResponse, CartResponse, CartSyncRequest
from app.services.cart_service import CartService, CartView

router = APIRouter(prefix="/cart", tags=["cart"])


def serialize_cart(view: CartView) -> CartResponse:
    return CartResponse(
        items=[
            CartItemResponse(
                product_id=i["product_id"],
                name=i["name"],
                price=float(i["price"]),
                quantity=i["quantity"],
                stock=i["stock"],
            )
            for i in view.items
        ],
        subtotal=float(view.subtotal),
        item_count=view.item_count,
    )


@router.get("/{user_id}", response_model=CartResponse)
async def get_cart(user_id: int, service: CartService = Depends(get_cart_service)):
    return serialize_cart(await service.get_cart(user_id))


@router.put("/{user_id}", response_model=CartResponse)
async def sync_cart(
    user_id: int,
    payload: CartSyncRequest,
    service: CartService = Depends(get_cart_service),
):
    return serialize_cart(await service.sync_cart(user_id, payload.items))


@router.delete("/{user_id}")
async def clear_cart(user_id: int, service: CartService = Depends(get_cart_service)):
    removed = await service.clear_cart(user_id)
    return {"removed": removed}
