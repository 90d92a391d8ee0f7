"""Trades module for bilateral item exchanges between two users.

A trade is a pair of item lists, one per participant, negotiated in place:

- Adding or removing a line re-checks the owner's live inventory but
  escrows nothing, and clears both approvals
- Once both participants approve, every line is moved between the two
  inventories in the same transaction that marks the trade completed
- Either participant may cancel a pending trade; nothing needs returning

Completed and canceled trades are final.
"""
import logging
from typing import List, Optional
from uuid import UUID

from database import Store, get_store, retry_on_conflict
from database.models import Trade, TradeItem, TradeStatus, utcnow
from errors import (
    ExchangeError,
    InsufficientInventoryError,
    InvalidRequestError,
    InvalidStateError,
    NotFoundError,
    NotParticipantError,
)
from inventory import InventoryError, InventoryLedger

logger = logging.getLogger(__name__)


class TradeError(ExchangeError):
    """Base exception for trade operations."""
    pass


class TradeNotFoundError(TradeError, NotFoundError):
    pass


class NotTradeParticipantError(TradeError, NotParticipantError):
    """Raised when the acting user is neither side of the trade."""
    pass


class TradeNotPendingError(TradeError, InvalidStateError):
    pass


class TradeItemUnavailableError(TradeError, InsufficientInventoryError):
    """Raised when a participant no longer holds what a trade line offers."""
    pass


class InvalidTradeError(TradeError, InvalidRequestError):
    pass


def _exchange_order(line: TradeItem):
    # Unique lines, then price-keyed stacks, then any-price stacks
    if line.is_unique:
        return 0
    return 1 if line.purchase_price is not None else 2


class TradeManager:
    """Manager class for trade negotiation and settlement."""

    def __init__(self, store: Optional[Store] = None):
        """Initialize the trade manager.

        Args:
            store: Optional store. If not provided, will get from database module.
        """
        self.store = store

    async def ensure_store(self) -> Store:
        if not self.store:
            self.store = await get_store()
        return self.store

    # ------------------------------------------------------------------
    # Lookups

    async def get_trade(self, trade_id: UUID) -> Trade:
        store = await self.ensure_store()
        async with store.transaction() as session:
            trade = await session.trades.get(trade_id)
        if not trade:
            raise TradeNotFoundError(f"Trade {trade_id} not found")
        return trade

    async def get_trades_by_user(self, user_id: str) -> List[Trade]:
        """All trades the user takes part in, newest first."""
        store = await self.ensure_store()
        async with store.transaction() as session:
            return await session.trades.list_by_user(user_id)

    async def _load(self, session, trade_id: UUID, user_id: str) -> Trade:
        """Lock a trade for mutation by one of its participants."""
        trade = await session.trades.get(trade_id, for_update=True)
        if not trade:
            raise TradeNotFoundError(f"Trade {trade_id} not found")
        if not trade.involves(user_id):
            raise NotTradeParticipantError(f"User {user_id} is not part of trade {trade_id}")
        if trade.status != TradeStatus.PENDING:
            raise TradeNotPendingError(f"Trade {trade_id} is {trade.status.value}")
        return trade

    @staticmethod
    def _side(trade: Trade, user_id: str) -> List[TradeItem]:
        if user_id == trade.from_user_id:
            return trade.from_user_items
        return trade.to_user_items

    @staticmethod
    def _touch(trade: Trade) -> None:
        trade.approved_from_user = False
        trade.approved_to_user = False
        trade.updated_at = utcnow()

    # ------------------------------------------------------------------
    # Negotiation

    @retry_on_conflict
    async def start_or_get_pending_trade(self, user_a: str, user_b: str) -> Trade:
        """Return the pending trade between two users, creating it if needed.

        The pair is unordered: a pending trade opened by ``user_b`` with
        ``user_a`` is returned as is. A new trade has ``user_a`` as its
        ``from_user_id``.

        Raises:
            InvalidTradeError: If both users are the same
        """
        if user_a == user_b:
            raise InvalidTradeError("Cannot trade with yourself")

        store = await self.ensure_store()
        async with store.transaction() as session:
            trade = await session.trades.find_pending(user_a, user_b, for_update=True)
            if trade:
                return trade
            trade = await session.trades.insert(Trade(from_user_id=user_a, to_user_id=user_b))
            logger.info(f"Opened trade {trade.id} between {user_a} and {user_b}")
            return trade

    @retry_on_conflict
    async def add_item_to_trade(self, trade_id: UUID, user_id: str, item: TradeItem) -> Trade:
        """Offer an item from the acting user's side of a trade.

        A unique item (``unique_id`` set) becomes its own line of amount 1
        carrying the inventory row's metadata. A stackable item merges into
        the line with the same purchase price. In both cases the user's live
        inventory must cover everything now offered for that item.

        Args:
            trade_id: Trade to modify
            user_id: Acting participant
            item: Line to add

        Returns:
            The updated trade, with both approvals cleared

        Raises:
            TradeNotFoundError: If the trade does not exist
            NotTradeParticipantError: If the user is not part of the trade
            TradeNotPendingError: If the trade is completed or canceled
            TradeItemUnavailableError: If the inventory does not cover the offer
            InvalidTradeError: If the unique item is already offered
        """
        store = await self.ensure_store()
        async with store.transaction() as session:
            trade = await self._load(session, trade_id, user_id)
            ledger = InventoryLedger(session)
            side = self._side(trade, user_id)

            if item.is_unique:
                if any(line.same_line(item) for line in side):
                    raise InvalidTradeError(f"Item {item.unique_id} is already in the trade")
                row = await ledger.find_unique(user_id, item.item_id, item.unique_id)
                if not row:
                    raise TradeItemUnavailableError(
                        f"{user_id} does not hold {item.item_id} ({item.unique_id})"
                    )
                side.append(TradeItem(
                    item_id=row.item_id,
                    amount=1,
                    metadata=row.metadata,
                    unique_id=row.unique_id,
                    purchase_price=row.purchase_price
                ))
            else:
                await self._check_stack_offer(ledger, user_id, side, item)
                existing = next((line for line in side if line.same_line(item)), None)
                if existing:
                    existing.amount += item.amount
                else:
                    side.append(TradeItem(
                        item_id=item.item_id,
                        amount=item.amount,
                        purchase_price=item.purchase_price
                    ))

            self._touch(trade)
            await session.trades.update(trade)
            logger.debug(f"{user_id} added {item.amount} {item.item_id} to trade {trade_id}")
            return trade

    async def _check_stack_offer(self, ledger, user_id, side, item):
        offered = [line for line in side if line.item_id == item.item_id and not line.is_unique]
        if item.purchase_price is not None:
            on_line = sum(line.amount for line in offered if line.purchase_price == item.purchase_price)
            held = await ledger.available(user_id, item.item_id, purchase_price=item.purchase_price)
            if on_line + item.amount > held:
                raise TradeItemUnavailableError(
                    f"{user_id} holds {held} {item.item_id} at price {item.purchase_price}, "
                    f"offering {on_line + item.amount}"
                )

        total = sum(line.amount for line in offered) + item.amount
        held = await ledger.available(user_id, item.item_id)
        if total > held:
            raise TradeItemUnavailableError(
                f"{user_id} holds {held} {item.item_id}, offering {total}"
            )

    @retry_on_conflict
    async def remove_item_from_trade(self, trade_id: UUID, user_id: str, item: TradeItem) -> Trade:
        """Withdraw an item from the acting user's side of a trade.

        A stackable line is reduced by ``item.amount`` and dropped once
        empty; a unique line is dropped. Removing something not on the trade
        changes no line but still clears both approvals.
        """
        store = await self.ensure_store()
        async with store.transaction() as session:
            trade = await self._load(session, trade_id, user_id)
            side = self._side(trade, user_id)

            existing = next((line for line in side if line.same_line(item)), None)
            if existing:
                if existing.is_unique or existing.amount <= item.amount:
                    side.remove(existing)
                else:
                    existing.amount -= item.amount

            self._touch(trade)
            await session.trades.update(trade)
            return trade

    @retry_on_conflict
    async def approve_trade(self, trade_id: UUID, user_id: str) -> Trade:
        """Approve a trade on behalf of one participant.

        When the second approval lands, both item lists are exchanged and
        the trade is completed in the same transaction. If either side can
        no longer cover its lines the whole approval is rolled back.

        Raises:
            TradeItemUnavailableError: If the exchange cannot be performed
        """
        store = await self.ensure_store()
        async with store.transaction() as session:
            trade = await self._load(session, trade_id, user_id)

            if user_id == trade.from_user_id:
                trade.approved_from_user = True
            else:
                trade.approved_to_user = True
            trade.updated_at = utcnow()

            if trade.approved_from_user and trade.approved_to_user:
                await self._exchange(InventoryLedger(session), trade)
                trade.status = TradeStatus.COMPLETED
                logger.info(
                    f"Trade {trade.id} completed: {trade.from_user_id} gave "
                    f"{len(trade.from_user_items)} lines, {trade.to_user_id} gave "
                    f"{len(trade.to_user_items)} lines"
                )

            await session.trades.update(trade)
            return trade

    async def _exchange(self, ledger: InventoryLedger, trade: Trade) -> None:
        """Move both item lists. All removals run before any addition."""
        deliveries = []
        try:
            for sender, receiver, lines in (
                (trade.from_user_id, trade.to_user_id, trade.from_user_items),
                (trade.to_user_id, trade.from_user_id, trade.to_user_items),
            ):
                for line in sorted(lines, key=_exchange_order):
                    if line.is_unique:
                        row = await ledger.remove_by_unique_id(sender, line.item_id, line.unique_id)
                        deliveries.append((receiver, [row]))
                    else:
                        pieces = await ledger.remove_item(
                            sender, line.item_id, line.amount, purchase_price=line.purchase_price
                        )
                        deliveries.append((receiver, pieces))
        except InventoryError as e:
            logger.warning(f"Trade {trade.id} cannot complete: {e.message}")
            raise TradeItemUnavailableError(f"Trade {trade.id} cannot complete: {e.message}") from e

        for receiver, pieces in deliveries:
            for piece in pieces:
                if piece.is_unique:
                    await ledger.restore_item(
                        receiver,
                        piece.item_id,
                        metadata=piece.metadata,
                        unique_id=piece.unique_id,
                        sellable=piece.sellable,
                        purchase_price=piece.purchase_price,
                        rarity=piece.rarity
                    )
                else:
                    await ledger.add_item(
                        receiver,
                        piece.item_id,
                        piece.amount,
                        sellable=piece.sellable,
                        purchase_price=piece.purchase_price,
                        rarity=piece.rarity
                    )

    @retry_on_conflict
    async def cancel_trade(self, trade_id: UUID, user_id: str) -> Trade:
        """Cancel a pending trade. Nothing was escrowed, so nothing moves."""
        store = await self.ensure_store()
        async with store.transaction() as session:
            trade = await self._load(session, trade_id, user_id)
            trade.status = TradeStatus.CANCELED
            trade.updated_at = utcnow()
            await session.trades.update(trade)
            logger.info(f"Trade {trade.id} canceled by {user_id}")
            return trade


__all__ = [
    'TradeManager',
    'TradeError',
    'TradeNotFoundError',
    'NotTradeParticipantError',
    'TradeNotPendingError',
    'TradeItemUnavailableError',
    'InvalidTradeError',
]
