"""Tests for the buy order module."""
import uuid

import pytest

from credits import InsufficientCreditsError, UserNotFoundError
from database.models import BuyOrderStatus
from errors import InvalidStateError
from orders import InvalidOrderError, NotOrderOwnerError, OrderNotActiveError, OrderNotFoundError


@pytest.mark.asyncio
async def test_create_escrows_max_price(orders, credits):
    order = await orders.create_buy_order("carol", "potion", 100)

    assert order.status == BuyOrderStatus.ACTIVE
    assert order.price == 100
    assert order.fulfilled_at is None and order.sale_id is None
    assert await credits.get_balance("carol") == 50


@pytest.mark.asyncio
async def test_create_requires_balance(orders, credits):
    with pytest.raises(InsufficientCreditsError):
        await orders.create_buy_order("carol", "potion", 151)

    assert await credits.get_balance("carol") == 150
    assert await orders.get_buy_orders_by_user("carol") == []


@pytest.mark.asyncio
async def test_create_validation(orders):
    with pytest.raises(InvalidOrderError):
        await orders.create_buy_order("alice", "potion", 0)
    with pytest.raises(InvalidOrderError):
        await orders.create_buy_order("alice", "", 10)
    with pytest.raises(UserNotFoundError):
        await orders.create_buy_order("mallory", "potion", 10)


@pytest.mark.asyncio
async def test_cancel_refunds(orders, credits):
    order = await orders.create_buy_order("carol", "potion", 100)

    cancelled = await orders.cancel_buy_order(order.id, "carol")

    assert cancelled.status == BuyOrderStatus.CANCELLED
    assert await credits.get_balance("carol") == 150


@pytest.mark.asyncio
async def test_cancel_twice_is_invalid_state(orders, credits):
    order = await orders.create_buy_order("carol", "potion", 100)
    await orders.cancel_buy_order(order.id, "carol")

    with pytest.raises(OrderNotActiveError) as exc:
        await orders.cancel_buy_order(order.id, "carol")
    assert isinstance(exc.value, InvalidStateError)
    assert await credits.get_balance("carol") == 150


@pytest.mark.asyncio
async def test_cancel_by_other_user_or_missing(orders, credits):
    order = await orders.create_buy_order("carol", "potion", 100)

    with pytest.raises(NotOrderOwnerError):
        await orders.cancel_buy_order(order.id, "alice")
    with pytest.raises(OrderNotFoundError):
        await orders.cancel_buy_order(uuid.uuid4(), "carol")
    assert await credits.get_balance("carol") == 50


@pytest.mark.asyncio
async def test_create_many_orders(orders, credits):
    placed = await orders.create_buy_orders("alice", "potion", 100, 3)

    assert len(placed) == 3
    assert len({o.id for o in placed}) == 3
    assert await credits.get_balance("alice") == 700


@pytest.mark.asyncio
async def test_create_many_is_all_or_nothing(orders, credits):
    with pytest.raises(InsufficientCreditsError):
        await orders.create_buy_orders("carol", "potion", 60, 3)

    assert await credits.get_balance("carol") == 150
    assert await orders.get_buy_orders_by_user("carol") == []

    with pytest.raises(InvalidOrderError):
        await orders.create_buy_orders("carol", "potion", 60, 0)


@pytest.mark.asyncio
async def test_order_queries(orders):
    low = await orders.create_buy_order("alice", "potion", 10)
    high = await orders.create_buy_order("bob", "potion", 30)
    tie = await orders.create_buy_order("alice", "potion", 10)
    other = await orders.create_buy_order("alice", "gem", 5)
    gone = await orders.create_buy_order("bob", "potion", 50)
    await orders.cancel_buy_order(gone.id, "bob")

    active = await orders.get_active_buy_orders_for_item("potion")
    assert [o.id for o in active] == [high.id, low.id, tie.id]

    mine = await orders.get_buy_orders_by_user("alice")
    assert [o.id for o in mine] == [other.id, tie.id, low.id]

    assert (await orders.get_buy_order(high.id)).buyer_id == "bob"
    with pytest.raises(OrderNotFoundError):
        await orders.get_buy_order(uuid.uuid4())
