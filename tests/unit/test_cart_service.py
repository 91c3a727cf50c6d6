from decimal import Decimal

import pytest

from app.schemas.cart import CartLine
from app.services.cart_service import CartService


@pytest.mark.asyncio
async def test_sync_keeps_the_larger_quantity_per_product(store, comic, poster):
    store.carts[1] = {comic.id: 3, poster.id: 1}
    service = CartService(store)

    view = await service.sync_cart(1, [CartLine(product_id=comic.id, quantity=1), CartLine(product_id=poster.id, quantity=2)])

    assert store.carts[1] == {comic.id: 3, poster.id: 2}
    assert view.item_count == 5
    assert view.subtotal == Decimal("53.50")


@pytest.mark.asyncio
async def test_sync_drops_unknown_and_inactive_products(store, comic):
    hidden = store.add_product("Hidden", "5.00", stock=3, active=False)
    service = CartService(store)

    await service.sync_cart(2, [
        CartLine(product_id=comic.id, quantity=1),
        CartLine(product_id=hidden.id, quantity=1),
        CartLine(product_id=9999, quantity=1),
    ])

    assert store.carts[2] == {comic.id: 1}


@pytest.mark.asyncio
async def test_clear_cart(store, comic):
    store.carts[3] = {comic.id: 1}

    assert await CartService(store).clear_cart(3) == 1
    assert (await CartService(store).get_cart(3)).items == []
