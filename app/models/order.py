"""
Order models

Orders are created in `pending` status at checkout with immutable captured
line prices. Status and payment status are driven by payment webhooks and
admin actions only.
"""
from datetime import datetime, timezone
from enum import Enum as PyEnum

from sqlalchemy import (
    Column, Integer, String, ForeignKey, DateTime, JSON, Numeric, Index, CheckConstraint
)
from sqlalchemy.orm import relationship

from app.core.database import Base


class OrderStatus(str, PyEnum):
    PENDING = "pending"
    PAID = "paid"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    DISPUTED = "disputed"


class PaymentStatus(str, PyEnum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"
    PARTIALLY_REFUNDED = "partially_refunded"
    DISPUTED = "disputed"


class CheckoutType(str, PyEnum):
    GUEST = "guest"
    REGISTERED = "registered"


# Admin-driven fulfillment transitions. Payment transitions are handled by
# the reconciliation service with conditional updates.
VALID_ORDER_TRANSITIONS = {
    OrderStatus.PENDING: [OrderStatus.CANCELLED],
    OrderStatus.PAID: [OrderStatus.SHIPPED],
    OrderStatus.SHIPPED: [OrderStatus.DELIVERED],
}


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    order_number = Column(String(40), unique=True, index=True, nullable=False)

    # Registered customer id, NULL for guest checkout
    user_id = Column(Integer, nullable=True, index=True)
    checkout_type = Column(String(20), default=CheckoutType.GUEST.value, nullable=False)

    status = Column(String(20), default=OrderStatus.PENDING.value, nullable=False, index=True)
    payment_status = Column(String(20), default=PaymentStatus.PENDING.value, nullable=False, index=True)

    # Pricing - Numeric(12,2), single currency per order
    subtotal = Column(Numeric(12, 2), nullable=False)
    shipping_cost = Column(Numeric(12, 2), default=0, nullable=False)
    discount_amount = Column(Numeric(12, 2), default=0, nullable=False)
    discount_code = Column(String(50), nullable=True, index=True)
    total = Column(Numeric(12, 2), nullable=False)
    refund_amount = Column(Numeric(12, 2), nullable=True)
    currency = Column(String(3), nullable=False, default="eur")

    # Shipping: {"type": "delivery", street, city, postal_code, country}
    # or {"type": "pickup", "location": ...}
    shipping_option = Column(String(20), nullable=False, default="delivery")
    shipping_address = Column(JSON)
    tracking_number = Column(String(100))

    # Contact captured at checkout (guest or registered)
    customer_email = Column(String(255), nullable=False, index=True)
    customer_first_name = Column(String(100))
    customer_last_name = Column(String(100))
    customer_phone = Column(String(40))

    # Payment provider references
    stripe_session_id = Column(String(255), unique=True, nullable=True)
    stripe_payment_intent_id = Column(String(255), unique=True, nullable=True)
    stripe_charge_id = Column(String(255), unique=True, nullable=True)

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), index=True)
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc)
    )
    paid_at = Column(DateTime(timezone=True))
    shipped_at = Column(DateTime(timezone=True))
    delivered_at = Column(DateTime(timezone=True))

    items = relationship("OrderItem", back_populates="order")

    __table_args__ = (
        Index(
            'ix_orders_paid_at', 'paid_at',
            postgresql_where=paid_at.isnot(None), sqlite_where=paid_at.isnot(None),
        ),
        CheckConstraint('total >= 0', name='check_order_total_non_negative'),
    )

    @property
    def customer_name(self) -> str:
        return " ".join(p for p in (self.customer_first_name, self.customer_last_name) if p)


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True)

    # Snapshot of product at time of order
    product_name = Column(String(500), nullable=False)
    price = Column(Numeric(12, 2), nullable=False)
    quantity = Column(Integer, nullable=False)

    order = relationship("Order", back_populates="items")
    product = relationship("Product", back_populates="order_items")

    __table_args__ = (
        CheckConstraint('quantity > 0', name='check_order_item_quantity_positive'),
    )

    @property
    def line_total(self):
        return self.price * self.quantity
