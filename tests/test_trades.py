"""Tests for the trades module."""
import uuid

import pytest

from database.models import TradeItem, TradeStatus
from errors import InsufficientInventoryError
from trades import (
    InvalidTradeError,
    NotTradeParticipantError,
    TradeItemUnavailableError,
    TradeNotFoundError,
    TradeNotPendingError,
)


async def stack_amounts(inventory, user_id, item_id):
    inv = await inventory.get_inventory(user_id)
    return {
        (i.sellable, i.purchase_price): i.amount
        for i in inv.items if i.item_id == item_id and not i.is_unique
    }


@pytest.mark.asyncio
async def test_start_or_get_pending_trade_is_per_pair(trades):
    trade = await trades.start_or_get_pending_trade("alice", "bob")

    assert trade.status == TradeStatus.PENDING
    assert trade.from_user_id == "alice"
    assert trade.to_user_id == "bob"
    assert trade.from_user_items == [] and trade.to_user_items == []

    again = await trades.start_or_get_pending_trade("bob", "alice")
    assert again.id == trade.id

    other = await trades.start_or_get_pending_trade("alice", "carol")
    assert other.id != trade.id


@pytest.mark.asyncio
async def test_new_trade_after_cancel(trades):
    trade = await trades.start_or_get_pending_trade("alice", "bob")
    await trades.cancel_trade(trade.id, "bob")

    fresh = await trades.start_or_get_pending_trade("alice", "bob")
    assert fresh.id != trade.id


@pytest.mark.asyncio
async def test_cannot_trade_with_self(trades):
    with pytest.raises(InvalidTradeError):
        await trades.start_or_get_pending_trade("alice", "alice")


@pytest.mark.asyncio
async def test_stackable_trade_scenario(inventory, trades):
    """A gives 3 of 5 potions; both approve; stacks end at 2 and 3."""
    await inventory.add_item("alice", "potion", 5)
    trade = await trades.start_or_get_pending_trade("alice", "bob")

    await trades.add_item_to_trade(trade.id, "alice", TradeItem(item_id="potion", amount=3))
    await trades.approve_trade(trade.id, "bob")
    done = await trades.approve_trade(trade.id, "alice")

    assert done.status == TradeStatus.COMPLETED
    assert await stack_amounts(inventory, "alice", "potion") == {(False, None): 2}
    assert await stack_amounts(inventory, "bob", "potion") == {(False, None): 3}


@pytest.mark.asyncio
async def test_two_way_trade_with_unique_item(inventory, trades):
    [sword] = await inventory.add_item("alice", "sword", 1, metadata={"name": "Blade"})
    await inventory.add_item("bob", "gold", 10, sellable=True, purchase_price=4)
    trade = await trades.start_or_get_pending_trade("alice", "bob")

    trade = await trades.add_item_to_trade(
        trade.id, "alice", TradeItem(item_id="sword", unique_id=sword.unique_id)
    )
    assert trade.from_user_items[0].metadata == {"name": "Blade"}
    await trades.add_item_to_trade(trade.id, "bob", TradeItem(item_id="gold", amount=10))
    await trades.approve_trade(trade.id, "alice")
    await trades.approve_trade(trade.id, "bob")

    received = await inventory.find_unique("bob", "sword", sword.unique_id)
    assert received is not None
    assert received.metadata == {"name": "Blade"}
    assert await inventory.find_unique("alice", "sword", sword.unique_id) is None
    # Stack terms come from the sender's inventory at exchange time
    assert await stack_amounts(inventory, "alice", "gold") == {(True, 4): 10}
    assert await stack_amounts(inventory, "bob", "gold") == {}


@pytest.mark.asyncio
async def test_add_merges_stackable_lines(inventory, trades):
    await inventory.add_item("alice", "potion", 5)
    trade = await trades.start_or_get_pending_trade("alice", "bob")

    await trades.add_item_to_trade(trade.id, "alice", TradeItem(item_id="potion", amount=2))
    trade = await trades.add_item_to_trade(trade.id, "alice", TradeItem(item_id="potion", amount=1))

    assert [(l.item_id, l.amount) for l in trade.from_user_items] == [("potion", 3)]
    # Nothing is escrowed while negotiating
    assert await inventory.get_amount("alice", "potion") == 5


@pytest.mark.asyncio
async def test_add_checks_cumulative_offer(inventory, trades):
    await inventory.add_item("alice", "potion", 5)
    trade = await trades.start_or_get_pending_trade("alice", "bob")
    await trades.add_item_to_trade(trade.id, "alice", TradeItem(item_id="potion", amount=3))

    with pytest.raises(TradeItemUnavailableError) as exc:
        await trades.add_item_to_trade(trade.id, "alice", TradeItem(item_id="potion", amount=3))
    assert isinstance(exc.value, InsufficientInventoryError)

    trade = await trades.get_trade(trade.id)
    assert trade.from_user_items[0].amount == 3


@pytest.mark.asyncio
async def test_add_checks_purchase_price_identity(inventory, trades):
    await inventory.add_item("alice", "gem", 2, sellable=True, purchase_price=5)
    trade = await trades.start_or_get_pending_trade("alice", "bob")

    with pytest.raises(TradeItemUnavailableError):
        await trades.add_item_to_trade(
            trade.id, "alice", TradeItem(item_id="gem", amount=1, purchase_price=9)
        )
    trade = await trades.add_item_to_trade(
        trade.id, "alice", TradeItem(item_id="gem", amount=2, purchase_price=5)
    )
    assert trade.from_user_items[0].purchase_price == 5


@pytest.mark.asyncio
async def test_add_unique_twice_rejected(inventory, trades):
    [sword] = await inventory.add_item("alice", "sword", 1, metadata={"name": "Blade"})
    trade = await trades.start_or_get_pending_trade("alice", "bob")
    line = TradeItem(item_id="sword", unique_id=sword.unique_id)
    await trades.add_item_to_trade(trade.id, "alice", line)

    with pytest.raises(InvalidTradeError):
        await trades.add_item_to_trade(trade.id, "alice", line)


@pytest.mark.asyncio
async def test_add_unique_not_held(trades):
    trade = await trades.start_or_get_pending_trade("alice", "bob")
    with pytest.raises(TradeItemUnavailableError):
        await trades.add_item_to_trade(
            trade.id, "alice", TradeItem(item_id="sword", unique_id="nope")
        )


@pytest.mark.asyncio
async def test_item_changes_reset_both_approvals(inventory, trades):
    await inventory.add_item("alice", "potion", 5)
    await inventory.add_item("bob", "gem", 1)
    trade = await trades.start_or_get_pending_trade("alice", "bob")
    await trades.add_item_to_trade(trade.id, "bob", TradeItem(item_id="gem"))

    trade = await trades.approve_trade(trade.id, "bob")
    assert trade.approved_to_user and not trade.approved_from_user

    trade = await trades.add_item_to_trade(trade.id, "alice", TradeItem(item_id="potion", amount=1))
    assert not trade.approved_from_user and not trade.approved_to_user

    await trades.approve_trade(trade.id, "bob")
    trade = await trades.remove_item_from_trade(trade.id, "alice", TradeItem(item_id="potion"))
    assert not trade.approved_from_user and not trade.approved_to_user
    assert trade.status == TradeStatus.PENDING


@pytest.mark.asyncio
async def test_remove_item_from_trade(inventory, trades):
    await inventory.add_item("alice", "potion", 5)
    [sword] = await inventory.add_item("alice", "sword", 1, metadata={"name": "Blade"})
    trade = await trades.start_or_get_pending_trade("alice", "bob")
    await trades.add_item_to_trade(trade.id, "alice", TradeItem(item_id="potion", amount=4))
    await trades.add_item_to_trade(trade.id, "alice", TradeItem(item_id="sword", unique_id=sword.unique_id))

    trade = await trades.remove_item_from_trade(trade.id, "alice", TradeItem(item_id="potion", amount=1))
    assert [(l.item_id, l.amount) for l in trade.from_user_items] == [("potion", 3), ("sword", 1)]

    trade = await trades.remove_item_from_trade(
        trade.id, "alice", TradeItem(item_id="sword", unique_id=sword.unique_id)
    )
    trade = await trades.remove_item_from_trade(trade.id, "alice", TradeItem(item_id="potion", amount=3))
    assert trade.from_user_items == []


@pytest.mark.asyncio
async def test_remove_absent_item_is_noop(trades):
    trade = await trades.start_or_get_pending_trade("alice", "bob")
    await trades.approve_trade(trade.id, "alice")

    trade = await trades.remove_item_from_trade(trade.id, "alice", TradeItem(item_id="ghost", amount=2))

    assert trade.from_user_items == []
    assert not trade.approved_from_user


@pytest.mark.asyncio
async def test_non_participant_and_missing_trade(inventory, trades):
    trade = await trades.start_or_get_pending_trade("alice", "bob")

    with pytest.raises(NotTradeParticipantError):
        await trades.approve_trade(trade.id, "carol")
    with pytest.raises(NotTradeParticipantError):
        await trades.cancel_trade(trade.id, "carol")
    with pytest.raises(TradeNotFoundError):
        await trades.get_trade(uuid.uuid4())
    with pytest.raises(TradeNotFoundError):
        await trades.approve_trade(uuid.uuid4(), "alice")


@pytest.mark.asyncio
async def test_failed_exchange_rolls_back(inventory, trades):
    """If the sender no longer holds the goods, nothing moves at all."""
    await inventory.add_item("alice", "potion", 3)
    await inventory.add_item("bob", "gem", 2)
    trade = await trades.start_or_get_pending_trade("alice", "bob")
    await trades.add_item_to_trade(trade.id, "bob", TradeItem(item_id="gem", amount=2))
    await trades.add_item_to_trade(trade.id, "alice", TradeItem(item_id="potion", amount=3))

    await inventory.remove_item("alice", "potion", 2)
    await trades.approve_trade(trade.id, "bob")

    with pytest.raises(TradeItemUnavailableError):
        await trades.approve_trade(trade.id, "alice")

    trade = await trades.get_trade(trade.id)
    assert trade.status == TradeStatus.PENDING
    assert trade.approved_to_user and not trade.approved_from_user
    assert await inventory.get_amount("alice", "potion") == 1
    assert await inventory.get_amount("alice", "gem") == 0
    assert await inventory.get_amount("bob", "gem") == 2
    assert await inventory.get_amount("bob", "potion") == 0


@pytest.mark.asyncio
async def test_cancel_trade(inventory, trades):
    await inventory.add_item("alice", "potion", 3)
    trade = await trades.start_or_get_pending_trade("alice", "bob")
    await trades.add_item_to_trade(trade.id, "alice", TradeItem(item_id="potion", amount=3))

    trade = await trades.cancel_trade(trade.id, "alice")
    assert trade.status == TradeStatus.CANCELED

    with pytest.raises(TradeNotPendingError):
        await trades.cancel_trade(trade.id, "alice")
    with pytest.raises(TradeNotPendingError):
        await trades.approve_trade(trade.id, "bob")
    assert await inventory.get_amount("alice", "potion") == 3


@pytest.mark.asyncio
async def test_completed_trade_is_final(inventory, trades):
    await inventory.add_item("alice", "potion", 3)
    trade = await trades.start_or_get_pending_trade("alice", "bob")
    await trades.approve_trade(trade.id, "alice")
    await trades.approve_trade(trade.id, "bob")

    with pytest.raises(TradeNotPendingError):
        await trades.add_item_to_trade(trade.id, "alice", TradeItem(item_id="potion"))
    with pytest.raises(TradeNotPendingError):
        await trades.cancel_trade(trade.id, "bob")


@pytest.mark.asyncio
async def test_trades_never_change_credits(store, inventory, trades, credits):
    await inventory.add_item("alice", "potion", 3)
    trade = await trades.start_or_get_pending_trade("alice", "bob")
    await trades.add_item_to_trade(trade.id, "alice", TradeItem(item_id="potion", amount=3))
    await trades.approve_trade(trade.id, "alice")
    await trades.approve_trade(trade.id, "bob")

    assert await credits.get_balance("alice") == 1000
    assert await credits.get_balance("bob") == 1000


@pytest.mark.asyncio
async def test_get_trades_by_user(trades):
    first = await trades.start_or_get_pending_trade("alice", "bob")
    second = await trades.start_or_get_pending_trade("carol", "alice")

    mine = await trades.get_trades_by_user("alice")
    assert [t.id for t in mine] == [second.id, first.id]
    assert [t.id for t in await trades.get_trades_by_user("bob")] == [first.id]
    assert await trades.get_trades_by_user("dave") == []
