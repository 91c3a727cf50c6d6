"""
Invoice model

Purchase invoices (one per paid order) and credit notes (one per completed
return). Numbers are sequential per prefix and calendar year, e.g.
FAC-2026-00001 / ABN-2026-00001.
"""
from enum import Enum as PyEnum

from sqlalchemy import (
    Column, Integer, String, DateTime, Numeric, ForeignKey, LargeBinary, Index
)

from app.core.database import Base
from app.core.utils import utcnow


class InvoiceType(str, PyEnum):
    PURCHASE = "purchase"
    RETURN = "return"


class Invoice(Base):
    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True, index=True)
    invoice_number = Column(String(30), unique=True, nullable=False, index=True)
    type = Column(String(20), nullable=False)

    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    return_id = Column(Integer, ForeignKey("returns.id", ondelete="CASCADE"), nullable=True)

    # Negative for credit notes
    amount = Column(Numeric(12, 2), nullable=False)
    tax_amount = Column(Numeric(12, 2), nullable=False)

    customer_name = Column(String(255))
    customer_email = Column(String(255))
    pdf_data = Column(LargeBinary)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        Index(
            'uq_invoices_purchase_order', 'order_id', unique=True,
            postgresql_where=(type == InvoiceType.PURCHASE.value),
            sqlite_where=(type == InvoiceType.PURCHASE.value),
        ),
        Index(
            'uq_invoices_return', 'return_id', unique=True,
            postgresql_where=return_id.isnot(None),
            sqlite_where=return_id.isnot(None),
        ),
    )
