"""
CheckoutService - pending order creation and hosted payment session

CHECKOUT FLOW:
1. Merge duplicate cart lines, load every product in one query
2. Reject the whole request if any line is out of stock or short,
   listing every offending line
3. Price every line from the catalog (client prices are ignored) and
   re-validate any discount code against that subtotal
4. Persist Order (pending) + OrderItems with captured unit prices
5. Open the hosted payment session with order_id in its metadata
6. Commit, or roll back the pending order if the provider call fails

Stock is validated here but only decremented once payment is confirmed.
"""
import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional

from app.core.config import settings
from app.core.exceptions import CheckoutError, EmptyCartError, PaymentProviderError, StockConflictError
from app.core.utils import to_cents, to_money, utcnow
from app.models import CheckoutType, Order, OrderItem, OrderStatus, PaymentStatus, Product
from app.schemas.checkout import CheckoutSessionRequest
from app.services.discount_service import DiscountService
from app.services.order_store import OrderStore
from app.services.payments import PaymentGateway

logger = logging.getLogger(__name__)

MINIMUM_CHARGE_CENTS = 50


@dataclass
class CheckoutSessionResult:
    session_id: str
    url: str
    order_id: int
    order_number: str
    total: Decimal


def generate_order_number() -> str:
    """Generate unique order number in format ORD-YYYYMMDD-XXXXXXXX."""
    return f"ORD-{datetime.now(timezone.utc).strftime('%Y%m%d')}-{uuid.uuid4().hex[:8].upper()}"


def merge_lines(lines) -> Dict[int, int]:
    """Sum quantities of repeated products, keeping first-seen order."""
    merged: Dict[int, int] = {}
    for line in lines:
        merged[line.product_id] = merged.get(line.product_id, 0) + line.quantity
    return merged


def find_stock_conflicts(quantities: Dict[int, int], products: Dict[int, Product]):
    out_of_stock: List[str] = []
    insufficient: List[dict] = []
    for product_id, requested in quantities.items():
        product = products.get(product_id)
        if product is None or not product.active or (product.stock or 0) <= 0:
            out_of_stock.append(product.name if product is not None else f"Product #{product_id}")
        elif product.stock < requested:
            insufficient.append({
                "product_id": product_id,
                "name": product.name,
                "available": product.stock,
                "requested": requested,
            })
    return out_of_stock, insufficient


def shipping_cost_for(option: str, subtotal: Decimal) -> Decimal:
    if option == "pickup":
        return to_money(0)
    if subtotal >= to_money(settings.FREE_SHIPPING_THRESHOLD):
        return to_money(0)
    return to_money(settings.SHIPPING_FLAT_RATE)


class CheckoutService:

    def __init__(
        self,
        store: OrderStore,
        gateway: PaymentGateway,
        discounts: Optional[DiscountService] = None,
    ):
        self.store = store
        self.gateway = gateway
        self.discounts = discounts or DiscountService(store)

    async def create_session(self, request: CheckoutSessionRequest) -> CheckoutSessionResult:
        start_time = time.time()

        quantities = merge_lines(request.items)
        if not quantities:
            raise EmptyCartError("No items in cart")

        products = await self.store.get_products(quantities.keys())

        out_of_stock, insufficient = find_stock_conflicts(quantities, products)
        if out_of_stock or insufficient:
            logger.info(
                f"Checkout rejected: out_of_stock={out_of_stock} insufficient={insufficient}"
            )
            raise StockConflictError(
                "Some items are no longer available in the requested quantity",
                out_of_stock=out_of_stock,
                insufficient=insufficient,
            )

        items = []
        subtotal = to_money(0)
        for product_id, quantity in quantities.items():
            product = products[product_id]
            price = to_money(product.price)
            subtotal += price * quantity
            items.append(OrderItem(
                product_id=product.id,
                product_name=product.name,
                price=price,
                quantity=quantity,
            ))

        discount = to_money(0)
        discount_code = None
        if request.discount_code:
            code, discount = await self.discounts.validate(
                request.discount_code, subtotal, request.customer.email
            )
            discount_code = code.code

        # Free shipping threshold applies to the undiscounted subtotal
        shipping_cost = shipping_cost_for(request.shipping_option, subtotal)
        total = to_money(subtotal + shipping_cost - discount)

        if to_cents(total) < MINIMUM_CHARGE_CENTS:
            raise CheckoutError("Order total is below the minimum chargeable amount")

        if request.shipping_option == "pickup":
            shipping_address = {"type": "pickup", "location": settings.PICKUP_LOCATION}
        else:
            shipping_address = {"type": "delivery", **request.address.model_dump()}

        first_name, last_name = request.customer.split_name()
        now = utcnow()
        order = Order(
            order_number=generate_order_number(),
            user_id=request.user_id,
            checkout_type=(CheckoutType.REGISTERED if request.user_id else CheckoutType.GUEST).value,
            status=OrderStatus.PENDING.value,
            payment_status=PaymentStatus.PENDING.value,
            subtotal=subtotal,
            shipping_cost=shipping_cost,
            discount_amount=discount,
            discount_code=discount_code,
            total=total,
            currency=settings.STRIPE_CURRENCY.lower(),
            shipping_option=request.shipping_option,
            shipping_address=shipping_address,
            customer_email=request.customer.email,
            customer_first_name=first_name,
            customer_last_name=last_name,
            customer_phone=request.customer.phone,
            created_at=now,
            updated_at=now,
        )
        await self.store.add_order(order, items)

        try:
            session = self.gateway.create_checkout_session(order, items)
        except PaymentProviderError:
            order_number = order.order_number
            await self.store.rollback()
            logger.warning(f"Pending order {order_number} discarded: payment session failed")
            raise

        order.stripe_session_id = session.id
        await self.store.update_order(order.id, stripe_session_id=session.id)
        await self.store.commit()

        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            f"CHECKOUT_METRIC: session_created "
            f"order_id={order.id} "
            f"session_id={session.id} "
            f"amount_cents={to_cents(total)} "
            f"item_count={len(items)} "
            f"duration_ms={duration_ms:.2f}"
        )

        return CheckoutSessionResult(
            session_id=session.id,
            url=session.url,
            order_id=order.id,
            order_number=order.order_number,
            total=total,
        )
