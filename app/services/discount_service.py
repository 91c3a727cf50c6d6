"""
Discount Service

Validates discount codes against a merchandise subtotal and prices them.
Checkout re-validates the code server side; the public validate endpoint is
a preview for the cart page only.
"""
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, Tuple

from app.core.exceptions import InvalidDiscountCodeError
from app.core.utils import to_money, utcnow
from app.models import DiscountCode, DiscountType
from app.schemas.discount import DiscountCodeCreateRequest
from app.services.order_store import OrderStore

logger = logging.getLogger(__name__)


def _aware(value: datetime) -> datetime:
    # Some drivers hand back naive UTC timestamps
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def calculate_discount(discount: DiscountCode, subtotal: Decimal) -> Decimal:
    """Discount for a subtotal, never more than the subtotal itself."""
    subtotal = to_money(subtotal)
    value = to_money(discount.discount_value)
    if discount.discount_type == DiscountType.PERCENTAGE.value:
        amount = to_money(subtotal * value / Decimal("100"))
        if discount.maximum_discount:
            amount = min(amount, to_money(discount.maximum_discount))
    elif discount.discount_type == DiscountType.FIXED_AMOUNT.value:
        amount = value
    else:
        amount = to_money(0)
    return min(amount, subtotal)


class DiscountService:

    def __init__(self, store: OrderStore):
        self.store = store

    async def validate(
        self,
        code: str,
        subtotal: Decimal,
        email: Optional[str] = None,
    ) -> Tuple[DiscountCode, Decimal]:
        """
        Validate a code for a subtotal and return (code, discount amount).

        Raises:
            InvalidDiscountCodeError: with a reason of REQUIRED, INVALID,
                NOT_STARTED, EXPIRED, EXHAUSTED, NOT_ELIGIBLE, ALREADY_USED
                or MIN_ORDER
        """
        normalized = (code or "").strip().upper()
        if not normalized:
            raise InvalidDiscountCodeError("A discount code is required", reason="REQUIRED")

        discount = await self.store.get_discount_code(normalized)
        if discount is None or not discount.is_active:
            raise InvalidDiscountCodeError("Discount code not found", reason="INVALID")

        now = utcnow()
        if discount.starts_at and now < _aware(discount.starts_at):
            raise InvalidDiscountCodeError("This code is not active yet", reason="NOT_STARTED")
        if discount.expires_at and now > _aware(discount.expires_at):
            raise InvalidDiscountCodeError("This code has expired", reason="EXPIRED")

        if discount.usage_limit_total is not None and (discount.usage_count or 0) >= discount.usage_limit_total:
            raise InvalidDiscountCodeError("This code has reached its usage limit", reason="EXHAUSTED")

        if email:
            if discount.target_email and discount.target_email.lower() != email.lower():
                raise InvalidDiscountCodeError("This code is not valid for your account", reason="NOT_ELIGIBLE")
            if discount.usage_limit_per_customer:
                used = await self.store.count_discount_redemptions(discount.code, email)
                if used >= discount.usage_limit_per_customer:
                    raise InvalidDiscountCodeError("You have already used this code", reason="ALREADY_USED")

        subtotal = to_money(subtotal)
        if discount.minimum_order_value and subtotal < to_money(discount.minimum_order_value):
            raise InvalidDiscountCodeError(
                f"Minimum order of {to_money(discount.minimum_order_value):.2f} required",
                reason="MIN_ORDER",
            )

        amount = calculate_discount(discount, subtotal)
        logger.info(f"Discount code {discount.code} valid: -{amount} on {subtotal}")
        return discount, amount

    async def create_code(self, request: DiscountCodeCreateRequest) -> DiscountCode:
        if await self.store.get_discount_code(request.code) is not None:
            raise InvalidDiscountCodeError(f"Discount code {request.code} already exists", reason="DUPLICATE")

        discount = DiscountCode(
            code=request.code,
            discount_type=request.discount_type,
            discount_value=to_money(request.discount_value),
            minimum_order_value=request.minimum_order_value,
            maximum_discount=request.maximum_discount,
            usage_limit_total=request.usage_limit_total,
            usage_limit_per_customer=request.usage_limit_per_customer,
            usage_count=0,
            target_email=request.target_email,
            starts_at=request.starts_at,
            expires_at=request.expires_at,
            is_active=True,
            created_at=utcnow(),
        )
        await self.store.add_discount_code(discount)
        await self.store.commit()
        logger.info(f"Discount code {discount.code} created ({discount.discount_type} {discount.discount_value})")
        return discount
