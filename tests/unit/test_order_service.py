import pytest

from app.core.exceptions import InvalidStateTransitionError, OrderError, OrderNotFoundError
from app.services.order_service import OrderService, can_transition_order


@pytest.fixture
def orders(store, notifier):
    return OrderService(store, notifier)


@pytest.mark.parametrize(
    "current, requested, allowed",
    [
        ("paid", "shipped", True),
        ("shipped", "delivered", True),
        ("pending", "cancelled", True),
        ("pending", "shipped", False),
        ("paid", "cancelled", False),
        ("delivered", "shipped", False),
        ("refunded", "delivered", False),
        ("paid", "teleported", False),
    ],
)
def test_order_transitions(current, requested, allowed):
    assert can_transition_order(current, requested) is allowed


@pytest.mark.asyncio
async def test_track_order_matches_email_case_insensitively(store, orders, comic):
    order = store.seed_order([(comic, 2)])

    found, items = await orders.track_order(order.order_number.lower(), "  ANA@example.com ")

    assert found is order
    assert [i.quantity for i in items] == [2]


@pytest.mark.asyncio
async def test_track_order_with_wrong_email_looks_like_unknown_order(store, orders, comic):
    order = store.seed_order([(comic, 1)])

    with pytest.raises(OrderNotFoundError):
        await orders.track_order(order.order_number, "intruder@example.com")


@pytest.mark.asyncio
async def test_ship_requires_tracking_number(store, orders, comic):
    order = store.seed_order([(comic, 1)], status="paid", payment_status="paid")

    with pytest.raises(OrderError):
        await orders.update_status(order.id, "shipped")
    assert order.status == "paid"


@pytest.mark.asyncio
async def test_ship_and_deliver(store, orders, email_provider, comic):
    order = store.seed_order([(comic, 1)], status="paid", payment_status="paid")

    await orders.update_status(order.id, "shipped", tracking_number=" 1Z999AA1 ")
    await orders.update_status(order.id, "delivered")

    assert order.status == "delivered"
    assert order.tracking_number == "1Z999AA1"
    assert order.shipped_at is not None
    assert order.delivered_at is not None
    assert len(email_provider.sent) == 1
    assert "1Z999AA1" in email_provider.sent[0]["body"]


@pytest.mark.asyncio
async def test_unpaid_order_cannot_ship(store, orders, comic):
    order = store.seed_order([(comic, 1)])

    with pytest.raises(InvalidStateTransitionError):
        await orders.update_status(order.id, "shipped", tracking_number="1Z")


@pytest.mark.asyncio
async def test_unknown_order(orders):
    with pytest.raises(OrderNotFoundError):
        await orders.update_status(999, "shipped", tracking_number="1Z")
