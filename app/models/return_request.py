"""
Return (RMA) models

A return is requested after delivery and then driven by admin transitions:

    pending -> approved -> received -> completed
    pending -> rejected | cancelled
    approved -> cancelled
    received -> rejected

Refund amount is the sum of captured order-line prices for the returned
quantities; the original shipping cost is never refunded.
"""
from datetime import datetime, timezone
from enum import Enum as PyEnum

from sqlalchemy import (
    Column, Integer, String, DateTime, Text, Numeric, ForeignKey, CheckConstraint
)
from sqlalchemy.orm import relationship

from app.core.database import Base


class ReturnStatus(str, PyEnum):
    PENDING = "pending"
    APPROVED = "approved"
    RECEIVED = "received"
    COMPLETED = "completed"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class ReturnReason(str, PyEnum):
    NOT_LIKED = "not_liked"
    DEFECTIVE = "defective"
    WRONG_ITEM = "wrong_item"
    OTHER = "other"


VALID_RETURN_TRANSITIONS = {
    ReturnStatus.PENDING: [
        ReturnStatus.APPROVED,
        ReturnStatus.REJECTED,
        ReturnStatus.CANCELLED,
    ],
    ReturnStatus.APPROVED: [
        ReturnStatus.RECEIVED,
        ReturnStatus.CANCELLED,
    ],
    ReturnStatus.RECEIVED: [
        ReturnStatus.COMPLETED,
        ReturnStatus.REJECTED,
    ],
    # Terminal states
    ReturnStatus.COMPLETED: [],
    ReturnStatus.REJECTED: [],
    ReturnStatus.CANCELLED: [],
}


def can_transition(current: str, requested: str) -> bool:
    try:
        return ReturnStatus(requested) in VALID_RETURN_TRANSITIONS[ReturnStatus(current)]
    except ValueError:
        return False


class ReturnRequest(Base):
    __tablename__ = "returns"

    id = Column(Integer, primary_key=True, index=True)
    return_number = Column(String(40), unique=True, index=True, nullable=False)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    customer_email = Column(String(255), nullable=False)

    reason = Column(String(30), nullable=False)
    description = Column(Text)
    status = Column(String(20), default=ReturnStatus.PENDING.value, nullable=False, index=True)

    refund_amount = Column(Numeric(12, 2), nullable=False)
    refund_status = Column(String(20), default="pending", nullable=False)
    admin_notes = Column(Text)

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc)
    )
    approved_at = Column(DateTime(timezone=True))
    completed_at = Column(DateTime(timezone=True))

    items = relationship("ReturnItem", back_populates="return_request")

    __table_args__ = (
        CheckConstraint('refund_amount >= 0', name='check_return_refund_non_negative'),
    )


class ReturnItem(Base):
    __tablename__ = "return_items"

    id = Column(Integer, primary_key=True, index=True)
    return_id = Column(Integer, ForeignKey("returns.id", ondelete="CASCADE"), nullable=False, index=True)
    order_item_id = Column(Integer, ForeignKey("order_items.id", ondelete="CASCADE"), nullable=False)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="SET NULL"), nullable=True)
    product_name = Column(String(500), nullable=False)
    quantity = Column(Integer, nullable=False)
    # Copied from the order line, never from the request
    price = Column(Numeric(12, 2), nullable=False)

    return_request = relationship("ReturnRequest", back_populates="items")

    __table_args__ = (
        CheckConstraint('quantity > 0', name='check_return_item_quantity_positive'),
    )
