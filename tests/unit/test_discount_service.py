from datetime import timedelta
from decimal import Decimal

import pytest

from app.core.exceptions import InvalidDiscountCodeError
from app.core.utils import utcnow
from app.schemas.discount import DiscountCodeCreateRequest
from app.services.discount_service import DiscountService, calculate_discount


async def reason_for(service, code, subtotal="40.00", email=None) -> str:
    with pytest.raises(InvalidDiscountCodeError) as exc_info:
        await service.validate(code, Decimal(subtotal), email)
    return exc_info.value.reason


@pytest.mark.asyncio
async def test_percentage_code_is_priced_on_subtotal(store):
    store.add_code("save10", value="10")

    code, amount = await DiscountService(store).validate(" save10 ", Decimal("45.00"))

    assert code.code == "SAVE10"
    assert amount == Decimal("4.50")


@pytest.mark.asyncio
async def test_percentage_respects_maximum_discount(store):
    store.add_code("HALF", value="50", maximum_discount=Decimal("10.00"))

    _, amount = await DiscountService(store).validate("HALF", Decimal("100.00"))
    assert amount == Decimal("10.00")


@pytest.mark.asyncio
async def test_fixed_amount_never_exceeds_subtotal(store):
    store.add_code("FIVE", discount_type="fixed_amount", value="5")
    store.add_code("BIG", discount_type="fixed_amount", value="80")
    service = DiscountService(store)

    assert (await service.validate("FIVE", Decimal("20.00")))[1] == Decimal("5.00")
    assert (await service.validate("BIG", Decimal("20.00")))[1] == Decimal("20.00")


@pytest.mark.asyncio
async def test_rejection_reasons(store, comic):
    now = utcnow()
    store.add_code("OFF", is_active=False)
    store.add_code("SOON", starts_at=now + timedelta(days=1))
    store.add_code("OLD", expires_at=now - timedelta(days=1))
    store.add_code("GONE", usage_limit_total=3, usage_count=3)
    store.add_code("VIP", target_email="vip@example.com")
    store.add_code("MIN", minimum_order_value=Decimal("50.00"))
    store.add_code("ONCE")
    store.seed_order([(comic, 1)], discount_code="ONCE", paid_at=now)
    service = DiscountService(store)

    assert await reason_for(service, "") == "REQUIRED"
    assert await reason_for(service, "NOPE") == "INVALID"
    assert await reason_for(service, "OFF") == "INVALID"
    assert await reason_for(service, "SOON") == "NOT_STARTED"
    assert await reason_for(service, "OLD") == "EXPIRED"
    assert await reason_for(service, "GONE") == "EXHAUSTED"
    assert await reason_for(service, "VIP", email="ana@example.com") == "NOT_ELIGIBLE"
    assert await reason_for(service, "MIN", subtotal="49.99") == "MIN_ORDER"
    assert await reason_for(service, "ONCE", email="ANA@example.com") == "ALREADY_USED"


@pytest.mark.asyncio
async def test_unpaid_orders_do_not_count_as_redemptions(store, comic):
    store.add_code("ONCE")
    store.seed_order([(comic, 1)], discount_code="ONCE")

    _, amount = await DiscountService(store).validate("ONCE", Decimal("40.00"), "ana@example.com")
    assert amount == Decimal("4.00")


@pytest.mark.asyncio
async def test_create_code_rejects_duplicates(store):
    service = DiscountService(store)
    request = DiscountCodeCreateRequest(code="spring-24", discount_type="fixed_amount", discount_value=Decimal("3"))

    created = await service.create_code(request)
    assert created.code == "SPRING-24"
    assert created.usage_count == 0
    assert store.commits == 1

    with pytest.raises(InvalidDiscountCodeError) as exc_info:
        await service.create_code(request)
    assert exc_info.value.reason == "DUPLICATE"


def test_percentage_over_100_is_rejected():
    with pytest.raises(ValueError):
        DiscountCodeCreateRequest(code="TOO-MUCH", discount_type="percentage", discount_value=Decimal("120"))


def test_calculate_discount_rounds_to_cents(store):
    code = store.add_code("THIRD", value="33.33")
    assert calculate_discount(code, Decimal("10.00")) == Decimal("3.33")
