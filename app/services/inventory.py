"""
Inventory adjustments driven by payments and returns.

Payment confirmation is authoritative over stock: decrements clamp at zero
and never block fulfillment. Return completion always adds back the full
returned quantity.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from app.services.order_store import OrderStore

logger = logging.getLogger(__name__)


@dataclass
class StockChange:
    product_id: Optional[int]
    quantity: int
    resulting_stock: Optional[int]


class InventoryService:

    def __init__(self, store: OrderStore):
        self.store = store

    async def decrement_for_order(self, order_id: int, items: Sequence) -> List[StockChange]:
        changes = []
        for item in items:
            if item.product_id is None:
                logger.warning(f"Order {order_id} line {item.id} has no product, stock not adjusted")
                continue
            remaining = await self.store.decrement_stock(item.product_id, item.quantity)
            if remaining is None:
                logger.warning(
                    f"Order {order_id}: product {item.product_id} no longer exists, stock not adjusted"
                )
            elif remaining == 0:
                logger.info(f"Product {item.product_id} sold out after order {order_id} (-{item.quantity})")
            else:
                logger.info(f"Stock for product {item.product_id}: -{item.quantity} -> {remaining}")
            changes.append(StockChange(item.product_id, -item.quantity, remaining))
        return changes

    async def replenish(self, reference: str, items: Sequence) -> List[StockChange]:
        changes = []
        for item in items:
            if item.product_id is None:
                continue
            remaining = await self.store.increment_stock(item.product_id, item.quantity)
            if remaining is None:
                logger.warning(f"{reference}: product {item.product_id} no longer exists, stock not replenished")
            else:
                logger.info(f"Stock for product {item.product_id}: +{item.quantity} -> {remaining} ({reference})")
            changes.append(StockChange(item.product_id, item.quantity, remaining))
        return changes
