"""
OrderStore - persistence seam for checkout, reconciliation and returns

Services never touch the session directly; they receive an OrderStore.
SqlOrderStore is the production implementation over an AsyncSession.

Status transitions are conditional UPDATEs so concurrent webhook deliveries
for the same order cannot both win: exactly one caller sees rowcount == 1.
"""
import logging
from typing import Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

from sqlalchemy import case, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import (
    CartItem,
    DiscountCode,
    Invoice,
    Order,
    OrderItem,
    Product,
    ReturnItem,
    ReturnRequest,
    WebhookLog,
)

logger = logging.getLogger(__name__)


class OrderStore(Protocol):
    """Operations the storefront services need from persistence."""

    async def get_product(self, product_id: int) -> Optional[Product]: ...

    async def get_products(self, product_ids: Iterable[int]) -> Dict[int, Product]: ...

    async def add_order(self, order: Order, items: List[OrderItem]) -> Order: ...

    async def get_order(self, order_id: int) -> Optional[Order]: ...

    async def get_order_by_number(self, order_number: str) -> Optional[Order]: ...

    async def get_order_items(self, order_id: int) -> List[OrderItem]: ...

    async def find_order_by_payment_intent(self, payment_intent_id: str) -> Optional[Order]: ...

    async def find_order_by_charge(self, charge_id: str) -> Optional[Order]: ...

    async def update_order(self, order_id: int, **values) -> None: ...

    async def transition_order(
        self,
        order_id: int,
        values: dict,
        status_in: Optional[Sequence[str]] = None,
        payment_status_not_in: Optional[Sequence[str]] = None,
    ) -> bool: ...

    async def decrement_stock(self, product_id: int, quantity: int) -> Optional[int]: ...

    async def increment_stock(self, product_id: int, quantity: int) -> Optional[int]: ...

    async def get_cart(self, user_id: int) -> List[Tuple[CartItem, Product]]: ...

    async def replace_cart(self, user_id: int, lines: Dict[int, int]) -> None: ...

    async def clear_cart(self, user_id: int) -> int: ...

    async def add_webhook_log(
        self, event_id: str, event_type: str, status: str, error_message: Optional[str] = None
    ) -> WebhookLog: ...

    async def list_webhook_logs(self, limit: int = 50, status: Optional[str] = None) -> List[WebhookLog]: ...

    async def add_return(self, return_request: ReturnRequest, items: List[ReturnItem]) -> ReturnRequest: ...

    async def get_return(self, return_id: int) -> Optional[ReturnRequest]: ...

    async def get_return_items(self, return_id: int) -> List[ReturnItem]: ...

    async def transition_return(self, return_id: int, values: dict, status_in: Sequence[str]) -> bool: ...

    async def get_returned_quantities(self, order_id: int) -> Dict[int, int]: ...

    async def get_discount_code(self, code: str) -> Optional[DiscountCode]: ...

    async def count_discount_redemptions(self, code: str, email: str) -> int: ...

    async def increment_discount_usage(self, code: str) -> None: ...

    async def add_discount_code(self, discount_code: DiscountCode) -> DiscountCode: ...

    async def list_discount_codes(self, active_only: bool = False) -> List[DiscountCode]: ...

    async def get_invoice(self, invoice_id: int) -> Optional[Invoice]: ...

    async def find_invoice(
        self, invoice_type: str, order_id: Optional[int] = None, return_id: Optional[int] = None
    ) -> Optional[Invoice]: ...

    async def last_invoice_number(self, prefix: str) -> Optional[str]: ...

    async def add_invoice(self, invoice: Invoice) -> Invoice: ...

    async def commit(self) -> None: ...

    async def rollback(self) -> None: ...


class SqlOrderStore:
    """OrderStore backed by a SQLAlchemy AsyncSession."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ----- Catalog -----

    async def get_product(self, product_id: int) -> Optional[Product]:
        return await self.db.get(Product, product_id)

    async def get_products(self, product_ids: Iterable[int]) -> Dict[int, Product]:
        ids = list(set(product_ids))
        if not ids:
            return {}
        result = await self.db.execute(select(Product).where(Product.id.in_(ids)))
        return {p.id: p for p in result.scalars().all()}

    async def decrement_stock(self, product_id: int, quantity: int) -> Optional[int]:
        """Atomically decrement stock, clamped at zero. Returns resulting stock."""
        result = await self.db.execute(
            update(Product)
            .where(Product.id == product_id)
            .values(stock=case((Product.stock > quantity, Product.stock - quantity), else_=0))
            .returning(Product.stock)
        )
        return result.scalar_one_or_none()

    async def increment_stock(self, product_id: int, quantity: int) -> Optional[int]:
        result = await self.db.execute(
            update(Product)
            .where(Product.id == product_id)
            .values(stock=Product.stock + quantity)
            .returning(Product.stock)
        )
        return result.scalar_one_or_none()

    # ----- Orders -----

    async def add_order(self, order: Order, items: List[OrderItem]) -> Order:
        self.db.add(order)
        await self.db.flush()
        for item in items:
            item.order_id = order.id
            self.db.add(item)
        await self.db.flush()
        return order

    async def get_order(self, order_id: int) -> Optional[Order]:
        return await self.db.get(Order, order_id, populate_existing=True)

    async def get_order_by_number(self, order_number: str) -> Optional[Order]:
        result = await self.db.execute(
            select(Order).where(Order.order_number == order_number)
        )
        return result.scalar_one_or_none()

    async def get_order_items(self, order_id: int) -> List[OrderItem]:
        result = await self.db.execute(
            select(OrderItem)
            .where(OrderItem.order_id == order_id)
            .order_by(OrderItem.id)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def find_order_by_payment_intent(self, payment_intent_id: str) -> Optional[Order]:
        result = await self.db.execute(
            select(Order).where(Order.stripe_payment_intent_id == payment_intent_id)
        )
        return result.scalar_one_or_none()

    async def find_order_by_charge(self, charge_id: str) -> Optional[Order]:
        result = await self.db.execute(
            select(Order).where(Order.stripe_charge_id == charge_id)
        )
        return result.scalar_one_or_none()

    async def update_order(self, order_id: int, **values) -> None:
        await self.db.execute(
            update(Order).where(Order.id == order_id).values(**values)
        )

    async def transition_order(
        self,
        order_id: int,
        values: dict,
        status_in: Optional[Sequence[str]] = None,
        payment_status_not_in: Optional[Sequence[str]] = None,
    ) -> bool:
        """
        Conditionally update an order.

        Returns True only when this call changed the row, which makes the
        caller the single owner of the transition's side effects.
        """
        stmt = update(Order).where(Order.id == order_id)
        if status_in is not None:
            stmt = stmt.where(Order.status.in_(list(status_in)))
        if payment_status_not_in is not None:
            stmt = stmt.where(Order.payment_status.not_in(list(payment_status_not_in)))
        result = await self.db.execute(
            stmt.values(**values).execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    # ----- Cart -----

    async def get_cart(self, user_id: int) -> List[Tuple[CartItem, Product]]:
        result = await self.db.execute(
            select(CartItem, Product)
            .join(Product, Product.id == CartItem.product_id)
            .where(CartItem.user_id == user_id)
            .order_by(CartItem.id)
        )
        return [(row[0], row[1]) for row in result.all()]

    async def replace_cart(self, user_id: int, lines: Dict[int, int]) -> None:
        await self.db.execute(delete(CartItem).where(CartItem.user_id == user_id))
        for product_id, quantity in lines.items():
            self.db.add(CartItem(user_id=user_id, product_id=product_id, quantity=quantity))
        await self.db.flush()

    async def clear_cart(self, user_id: int) -> int:
        result = await self.db.execute(delete(CartItem).where(CartItem.user_id == user_id))
        return result.rowcount or 0

    # ----- Webhook audit -----

    async def add_webhook_log(
        self, event_id: str, event_type: str, status: str, error_message: Optional[str] = None
    ) -> WebhookLog:
        log = WebhookLog(
            event_id=event_id,
            event_type=event_type,
            status=status,
            error_message=error_message,
        )
        self.db.add(log)
        await self.db.flush()
        return log

    async def list_webhook_logs(self, limit: int = 50, status: Optional[str] = None) -> List[WebhookLog]:
        query = select(WebhookLog).order_by(WebhookLog.created_at.desc()).limit(limit)
        if status:
            query = query.where(WebhookLog.status == status)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    # ----- Returns -----

    async def add_return(self, return_request: ReturnRequest, items: List[ReturnItem]) -> ReturnRequest:
        self.db.add(return_request)
        await self.db.flush()
        for item in items:
            item.return_id = return_request.id
            self.db.add(item)
        await self.db.flush()
        return return_request

    async def get_return(self, return_id: int) -> Optional[ReturnRequest]:
        return await self.db.get(ReturnRequest, return_id, populate_existing=True)

    async def get_return_items(self, return_id: int) -> List[ReturnItem]:
        result = await self.db.execute(
            select(ReturnItem)
            .where(ReturnItem.return_id == return_id)
            .order_by(ReturnItem.id)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def transition_return(self, return_id: int, values: dict, status_in: Sequence[str]) -> bool:
        result = await self.db.execute(
            update(ReturnRequest)
            .where(ReturnRequest.id == return_id)
            .where(ReturnRequest.status.in_(list(status_in)))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def get_returned_quantities(self, order_id: int) -> Dict[int, int]:
        """Quantities already claimed by returns that are still open or completed."""
        result = await self.db.execute(
            select(ReturnItem.order_item_id, func.sum(ReturnItem.quantity))
            .join(ReturnRequest, ReturnRequest.id == ReturnItem.return_id)
            .where(ReturnRequest.order_id == order_id)
            .where(ReturnRequest.status.not_in(["rejected", "cancelled"]))
            .group_by(ReturnItem.order_item_id)
        )
        return {row[0]: int(row[1]) for row in result.all()}

    # ----- Discount codes -----

    async def get_discount_code(self, code: str) -> Optional[DiscountCode]:
        result = await self.db.execute(
            select(DiscountCode).where(DiscountCode.code == code.strip().upper())
        )
        return result.scalar_one_or_none()

    async def count_discount_redemptions(self, code: str, email: str) -> int:
        """Paid orders of one customer that used the code."""
        result = await self.db.execute(
            select(func.count(Order.id))
            .where(Order.discount_code == code)
            .where(func.lower(Order.customer_email) == email.lower())
            .where(Order.paid_at.isnot(None))
        )
        return result.scalar_one() or 0

    async def increment_discount_usage(self, code: str) -> None:
        await self.db.execute(
            update(DiscountCode)
            .where(DiscountCode.code == code)
            .values(usage_count=DiscountCode.usage_count + 1)
            .execution_options(synchronize_session=False)
        )

    async def add_discount_code(self, discount_code: DiscountCode) -> DiscountCode:
        self.db.add(discount_code)
        await self.db.flush()
        return discount_code

    async def list_discount_codes(self, active_only: bool = False) -> List[DiscountCode]:
        query = select(DiscountCode).order_by(DiscountCode.created_at.desc())
        if active_only:
            query = query.where(DiscountCode.is_active.is_(True))
        result = await self.db.execute(query)
        return list(result.scalars().all())

    # ----- Invoices -----

    async def get_invoice(self, invoice_id: int) -> Optional[Invoice]:
        return await self.db.get(Invoice, invoice_id)

    async def find_invoice(
        self, invoice_type: str, order_id: Optional[int] = None, return_id: Optional[int] = None
    ) -> Optional[Invoice]:
        query = select(Invoice).where(Invoice.type == invoice_type)
        if order_id is not None:
            query = query.where(Invoice.order_id == order_id)
        if return_id is not None:
            query = query.where(Invoice.return_id == return_id)
        result = await self.db.execute(query.limit(1))
        return result.scalar_one_or_none()

    async def last_invoice_number(self, prefix: str) -> Optional[str]:
        # Sequence is zero padded, so lexical order matches numeric order
        result = await self.db.execute(
            select(Invoice.invoice_number)
            .where(Invoice.invoice_number.like(f"{prefix}%"))
            .order_by(Invoice.invoice_number.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def add_invoice(self, invoice: Invoice) -> Invoice:
        self.db.add(invoice)
        await self.db.flush()
        return invoice

    # ----- Unit of work -----

    async def commit(self) -> None:
        await self.db.commit()

    async def rollback(self) -> None:
        await self.db.rollback()
