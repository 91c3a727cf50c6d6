"""
InvoiceService - purchase invoices and credit notes

"Generate if not already generated": an existing invoice for the same
order (or return) is returned as-is, so callers can invoke this on every
payment confirmation or return completion without duplicating documents.

Numbers are sequential per prefix and year: FAC-2026-00001 for purchases,
ABN-2026-00001 for credit notes. Prices include VAT, so the tax share of
an amount A at rate r is A * r / (1 + r).
"""
import io
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Sequence

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import cm
from reportlab.lib.enums import TA_RIGHT
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer

from app.core.config import settings
from app.core.utils import to_money, utcnow
from app.models import Invoice, InvoiceType, Order
from app.services.order_store import OrderStore

logger = logging.getLogger(__name__)


@dataclass
class InvoiceResult:
    success: bool
    invoice_id: Optional[int] = None
    invoice_number: Optional[str] = None
    error: Optional[str] = None
    already_exists: bool = False


def included_tax(amount, rate: Optional[float] = None) -> Decimal:
    """VAT contained in a VAT-inclusive amount."""
    rate = Decimal(str(settings.VAT_RATE if rate is None else rate))
    return to_money(Decimal(str(amount)) * rate / (Decimal(1) + rate))


def next_invoice_number(prefix: str, year: int, last_number: Optional[str]) -> str:
    sequence = 1
    if last_number:
        sequence = int(last_number.rsplit("-", 1)[1]) + 1
    return f"{prefix}-{year}-{sequence:05d}"


def render_invoice_pdf(
    invoice_number: str,
    title: str,
    order: Order,
    lines: Sequence[Sequence],
    amount: Decimal,
    tax_amount: Decimal,
    issued_at: datetime,
    reference: Optional[str] = None,
) -> bytes:
    """Render an A4 invoice with reportlab and return the PDF bytes."""
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        rightMargin=1.5 * cm,
        leftMargin=1.5 * cm,
        topMargin=1.5 * cm,
        bottomMargin=1.5 * cm,
        title=invoice_number,
    )

    styles = getSampleStyleSheet()
    right_style = ParagraphStyle('Right', parent=styles['Normal'], alignment=TA_RIGHT)
    currency = (order.currency or settings.STRIPE_CURRENCY).upper()

    elements = []
    elements.append(Paragraph(f"{title} {invoice_number}", styles['Heading1']))
    elements.append(Paragraph(f"Date: {issued_at.strftime('%Y-%m-%d')}", styles['Normal']))
    if reference:
        elements.append(Paragraph(reference, styles['Normal']))
    elements.append(Spacer(1, 12))

    seller = [settings.COMPANY_NAME, settings.COMPANY_TAX_ID, settings.COMPANY_ADDRESS]
    buyer = [order.customer_name, order.customer_email]
    address = order.shipping_address or {}
    if address.get("type") != "pickup":
        buyer.append(", ".join(
            str(address[k]) for k in ("street", "city", "postal_code", "country") if address.get(k)
        ))
    parties = Table(
        [[Paragraph("<br/>".join(p for p in seller if p), styles['Normal']),
          Paragraph("<br/>".join(p for p in buyer if p), right_style)]],
        colWidths=[9 * cm, 9 * cm],
    )
    elements.append(parties)
    elements.append(Spacer(1, 18))

    table_data = [["Description", "Qty", "Unit price", "Total"]]
    for name, quantity, price in lines:
        table_data.append([
            Paragraph(str(name), styles['Normal']),
            str(quantity),
            f"{to_money(price):.2f} {currency}",
            f"{to_money(Decimal(str(price)) * quantity):.2f} {currency}",
        ])

    base = to_money(amount - tax_amount)
    table_data.append(["", "", "Taxable base", f"{base:.2f} {currency}"])
    table_data.append(["", "", f"VAT {settings.VAT_RATE * 100:.0f}%", f"{tax_amount:.2f} {currency}"])
    table_data.append(["", "", "Total", f"{to_money(amount):.2f} {currency}"])

    lines_table = Table(table_data, colWidths=[9 * cm, 2 * cm, 3.5 * cm, 3.5 * cm])
    lines_table.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor('#333333')),
        ('TEXTCOLOR', (0, 0), (-1, 0), colors.white),
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('FONTNAME', (2, -1), (-1, -1), 'Helvetica-Bold'),
        ('ALIGN', (1, 0), (-1, -1), 'RIGHT'),
        ('GRID', (0, 0), (-1, -4), 0.5, colors.grey),
        ('FONTSIZE', (0, 0), (-1, -1), 9),
        ('BOTTOMPADDING', (0, 0), (-1, -1), 5),
        ('TOPPADDING', (0, 0), (-1, -1), 5),
    ]))
    elements.append(lines_table)

    doc.build(elements)
    return buffer.getvalue()


class InvoiceService:

    def __init__(self, store: OrderStore):
        self.store = store

    async def _allocate_number(self, prefix: str, issued_at: datetime) -> str:
        year = issued_at.year
        last = await self.store.last_invoice_number(f"{prefix}-{year}-")
        return next_invoice_number(prefix, year, last)

    async def generate_purchase_invoice(self, order_id: int) -> InvoiceResult:
        existing = await self.store.find_invoice(InvoiceType.PURCHASE.value, order_id=order_id)
        if existing:
            return InvoiceResult(
                success=True,
                invoice_id=existing.id,
                invoice_number=existing.invoice_number,
                already_exists=True,
            )

        order = await self.store.get_order(order_id)
        if not order:
            return InvoiceResult(success=False, error="Order not found")

        try:
            items = await self.store.get_order_items(order_id)
            issued_at = utcnow()
            number = await self._allocate_number(settings.INVOICE_PURCHASE_PREFIX, issued_at)
            amount = to_money(order.total)
            tax_amount = included_tax(amount)

            lines: List[tuple] = [(i.product_name, i.quantity, i.price) for i in items]
            if order.shipping_cost and to_money(order.shipping_cost) > 0:
                lines.append(("Shipping", 1, order.shipping_cost))
            if order.discount_amount and to_money(order.discount_amount) > 0:
                label = f"Discount {order.discount_code}" if order.discount_code else "Discount"
                lines.append((label, 1, -to_money(order.discount_amount)))

            invoice = Invoice(
                invoice_number=number,
                type=InvoiceType.PURCHASE.value,
                order_id=order.id,
                amount=amount,
                tax_amount=tax_amount,
                customer_name=order.customer_name,
                customer_email=order.customer_email,
                pdf_data=render_invoice_pdf(
                    number, "Invoice", order, lines, amount, tax_amount, issued_at,
                    reference=f"Order {order.order_number}",
                ),
                created_at=issued_at,
            )
            await self.store.add_invoice(invoice)
        except Exception as e:
            logger.exception(f"Purchase invoice for order {order_id} failed")
            return InvoiceResult(success=False, error=str(e))

        logger.info(f"Invoice {number} generated for order {order.order_number} ({amount})")
        return InvoiceResult(success=True, invoice_id=invoice.id, invoice_number=number)

    async def generate_return_invoice(self, return_id: int) -> InvoiceResult:
        existing = await self.store.find_invoice(InvoiceType.RETURN.value, return_id=return_id)
        if existing:
            return InvoiceResult(
                success=True,
                invoice_id=existing.id,
                invoice_number=existing.invoice_number,
                already_exists=True,
            )

        ret = await self.store.get_return(return_id)
        if not ret:
            return InvoiceResult(success=False, error="Return not found")
        order = await self.store.get_order(ret.order_id)
        if not order:
            return InvoiceResult(success=False, error="Order not found")

        try:
            items = await self.store.get_return_items(return_id)
            issued_at = utcnow()
            number = await self._allocate_number(settings.INVOICE_RETURN_PREFIX, issued_at)
            refund = to_money(ret.refund_amount)
            amount = -refund
            tax_amount = -included_tax(refund)

            invoice = Invoice(
                invoice_number=number,
                type=InvoiceType.RETURN.value,
                order_id=order.id,
                return_id=ret.id,
                amount=amount,
                tax_amount=tax_amount,
                customer_name=order.customer_name,
                customer_email=order.customer_email,
                pdf_data=render_invoice_pdf(
                    number, "Credit note", order,
                    [(i.product_name, i.quantity, -Decimal(str(i.price))) for i in items],
                    amount, tax_amount, issued_at,
                    reference=f"Return {ret.return_number} for order {order.order_number}",
                ),
                created_at=issued_at,
            )
            await self.store.add_invoice(invoice)
        except Exception as e:
            logger.exception(f"Credit note for return {return_id} failed")
            return InvoiceResult(success=False, error=str(e))

        logger.info(f"Credit note {number} generated for return {ret.return_number} ({amount})")
        return InvoiceResult(success=True, invoice_id=invoice.id, invoice_number=number)
