"""Buy orders: standing bids for one unit of an item.

Placing an order escrows its maximum price out of the buyer's balance right
away; cancelling refunds it. A new order is immediately matched against the
cheapest active listing it can afford.
"""
import logging
from typing import List, Optional
from uuid import UUID

from credits import CreditLedger
from database import Store, get_store, retry_on_conflict
from database.models import BuyOrder, BuyOrderStatus, utcnow
from errors import ExchangeError, InvalidRequestError, InvalidStateError, NotFoundError, NotOwnerError
from matching import match_buy_order

logger = logging.getLogger(__name__)


class OrderError(ExchangeError):
    """Base exception for buy order operations."""
    pass


class OrderNotFoundError(OrderError, NotFoundError):
    pass


class NotOrderOwnerError(OrderError, NotOwnerError):
    pass


class OrderNotActiveError(OrderError, InvalidStateError):
    pass


class InvalidOrderError(OrderError, InvalidRequestError):
    pass


class BuyOrderManager:
    """Manager class for buy order placement and cancellation."""

    def __init__(self, store: Optional[Store] = None):
        self.store = store

    async def ensure_store(self) -> Store:
        if not self.store:
            self.store = await get_store()
        return self.store

    async def _place(self, session, buyer_id: str, item_id: str, max_price: int) -> BuyOrder:
        await CreditLedger(session).debit(buyer_id, max_price)
        order = await session.buy_orders.insert(
            BuyOrder(buyer_id=buyer_id, item_id=item_id, price=max_price)
        )
        logger.info(f"Buy order {order.id}: {buyer_id} bids {max_price} for {item_id}")

        matched = await match_buy_order(session, order)
        if matched:
            order = matched[1]
        return order

    @staticmethod
    def _validate(item_id: str, max_price: int) -> None:
        if not item_id:
            raise InvalidOrderError("Item id is required")
        if not isinstance(max_price, int) or isinstance(max_price, bool) or max_price <= 0:
            raise InvalidOrderError(f"Price must be a positive integer, got {max_price!r}")

    @retry_on_conflict
    async def create_buy_order(self, buyer_id: str, item_id: str, max_price: int) -> BuyOrder:
        """Place a buy order for one unit of an item.

        Args:
            buyer_id: Bidding user
            item_id: Wanted item
            max_price: Highest acceptable price, escrowed immediately

        Returns:
            The order; already ``fulfilled`` if a listing matched

        Raises:
            InvalidOrderError: If the price is not positive
            UserNotFoundError: If the buyer does not exist
            InsufficientCreditsError: If the buyer cannot cover ``max_price``
        """
        self._validate(item_id, max_price)
        store = await self.ensure_store()
        async with store.transaction() as session:
            return await self._place(session, buyer_id, item_id, max_price)

    @retry_on_conflict
    async def create_buy_orders(self, buyer_id: str, item_id: str, max_price: int,
                                quantity: int) -> List[BuyOrder]:
        """Place ``quantity`` independent orders, each matched in turn.

        Either every order is placed or none is.
        """
        self._validate(item_id, max_price)
        if not isinstance(quantity, int) or quantity < 1:
            raise InvalidOrderError(f"Quantity must be a positive integer, got {quantity!r}")

        store = await self.ensure_store()
        async with store.transaction() as session:
            return [await self._place(session, buyer_id, item_id, max_price) for _ in range(quantity)]

    @retry_on_conflict
    async def cancel_buy_order(self, order_id: UUID, buyer_id: str) -> BuyOrder:
        """Cancel an active order and refund its escrowed price."""
        store = await self.ensure_store()
        async with store.transaction() as session:
            order = await session.buy_orders.get(order_id, for_update=True)
            if not order:
                raise OrderNotFoundError(f"Buy order {order_id} not found")
            if order.buyer_id != buyer_id:
                raise NotOrderOwnerError(f"Buy order {order_id} does not belong to {buyer_id}")
            if order.status != BuyOrderStatus.ACTIVE:
                raise OrderNotActiveError(f"Buy order {order_id} is {order.status.value}")

            await CreditLedger(session).credit(buyer_id, order.price)
            order.status = BuyOrderStatus.CANCELLED
            order.updated_at = utcnow()
            await session.buy_orders.update(order)
            logger.info(f"Buy order {order_id} cancelled, refunded {order.price} to {buyer_id}")
            return order

    async def get_buy_order(self, order_id: UUID) -> BuyOrder:
        store = await self.ensure_store()
        async with store.transaction() as session:
            order = await session.buy_orders.get(order_id)
        if not order:
            raise OrderNotFoundError(f"Buy order {order_id} not found")
        return order

    async def get_buy_orders_by_user(self, buyer_id: str) -> List[BuyOrder]:
        store = await self.ensure_store()
        async with store.transaction() as session:
            return await session.buy_orders.list_by_buyer(buyer_id)

    async def get_active_buy_orders_for_item(self, item_id: str) -> List[BuyOrder]:
        """Active orders for an item, highest price first, oldest first on ties."""
        store = await self.ensure_store()
        async with store.transaction() as session:
            return await session.buy_orders.list_active(item_id)


__all__ = [
    'BuyOrderManager',
    'OrderError',
    'OrderNotFoundError',
    'NotOrderOwnerError',
    'OrderNotActiveError',
    'InvalidOrderError',
]
