"""
Product model

Stock is only mutated by payment fulfillment (decrement, clamped at 0)
and by completed returns (increment).
"""
from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text, Numeric, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.core.database import Base


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    sku = Column(String(50), unique=True, index=True, nullable=False)
    name = Column(String(500), nullable=False, index=True)
    description = Column(Text)
    image_url = Column(String)

    # Pricing - Numeric(12,2), VAT inclusive
    price = Column(Numeric(12, 2), nullable=False)

    # Inventory
    stock = Column(Integer, default=0, nullable=False)
    active = Column(Boolean, default=True, nullable=False, index=True)

    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now()
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        server_default=func.now()
    )

    # Relationships
    cart_items = relationship("CartItem", back_populates="product")
    order_items = relationship("OrderItem", back_populates="product")

    __table_args__ = (
        CheckConstraint('stock >= 0', name='check_stock_non_negative'),
        CheckConstraint('price > 0', name='check_price_positive'),
    )

    @property
    def is_available(self) -> bool:
        return bool(self.active) and (self.stock or 0) > 0
