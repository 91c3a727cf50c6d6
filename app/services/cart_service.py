"""
CartService - persisted carts for registered customers

Guest carts live on the client. On login the client cart is merged into the
persisted one: the larger quantity per product wins, and unknown or inactive
products are dropped.
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List

from app.core.utils import to_money
from app.services.order_store import OrderStore

logger = logging.getLogger(__name__)


@dataclass
class CartView:
    items: List[dict] = field(default_factory=list)
    subtotal: Decimal = Decimal("0.00")

    @property
    def item_count(self) -> int:
        return sum(i["quantity"] for i in self.items)


class CartService:

    def __init__(self, store: OrderStore):
        self.store = store

    async def get_cart(self, user_id: int) -> CartView:
        view = CartView()
        for cart_item, product in await self.store.get_cart(user_id):
            price = to_money(product.price)
            view.items.append({
                "product_id": product.id,
                "name": product.name,
                "price": price,
                "quantity": cart_item.quantity,
                "stock": product.stock,
            })
            view.subtotal += price * cart_item.quantity
        view.subtotal = to_money(view.subtotal)
        return view

    async def sync_cart(self, user_id: int, lines) -> CartView:
        merged: Dict[int, int] = {
            cart_item.product_id: cart_item.quantity
            for cart_item, _ in await self.store.get_cart(user_id)
        }
        for line in lines:
            merged[line.product_id] = max(merged.get(line.product_id, 0), line.quantity)

        products = await self.store.get_products(merged.keys())
        kept = {}
        for product_id, quantity in merged.items():
            product = products.get(product_id)
            if product is None or not product.active:
                logger.info(f"Cart for user {user_id}: dropping unavailable product {product_id}")
                continue
            kept[product_id] = quantity

        await self.store.replace_cart(user_id, kept)
        await self.store.commit()
        return await self.get_cart(user_id)

    async def clear_cart(self, user_id: int) -> int:
        removed = await self.store.clear_cart(user_id)
        await self.store.commit()
        return removed
