"""
Discount code model

Codes are stored upper-case. A code applies to the merchandise subtotal,
never to shipping, and is redeemed (usage_count) once the order is paid.
"""
from enum import Enum as PyEnum

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Numeric, CheckConstraint

from app.core.database import Base
from app.core.utils import utcnow


class DiscountType(str, PyEnum):
    PERCENTAGE = "percentage"
    FIXED_AMOUNT = "fixed_amount"


class DiscountCode(Base):
    __tablename__ = "discount_codes"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(50), unique=True, nullable=False, index=True)

    discount_type = Column(String(20), nullable=False)
    discount_value = Column(Numeric(10, 2), nullable=False)

    # Constraints
    minimum_order_value = Column(Numeric(10, 2))
    maximum_discount = Column(Numeric(10, 2))  # Cap for percentage discounts

    # Usage limits, NULL = unlimited
    usage_limit_total = Column(Integer)
    usage_limit_per_customer = Column(Integer, default=1)
    usage_count = Column(Integer, default=0, nullable=False)

    # Personal codes only work for this email
    target_email = Column(String(255))

    starts_at = Column(DateTime(timezone=True))
    expires_at = Column(DateTime(timezone=True))
    is_active = Column(Boolean, default=True, nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint('discount_value > 0', name='check_discount_value_positive'),
        CheckConstraint('usage_count >= 0', name='check_discount_usage_non_negative'),
    )
