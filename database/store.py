"""Storage interface used by the exchange engine.

The engine never issues queries itself. It opens a transaction on a
``Store`` and works through the narrow repositories hanging off the
yielded ``Session``:

    async with store.transaction() as session:
        trade = await session.trades.get(trade_id, for_update=True)
        ...

Everything done inside one ``transaction()`` block commits together, or is
rolled back if the block raises.
"""
import functools
import logging
from abc import ABC, abstractmethod
from typing import AsyncContextManager, List, Optional
from uuid import UUID

import backoff

from .exceptions import TransactionConflictError
from .models import BuyOrder, InventoryItem, MarketListing, Trade, User

logger = logging.getLogger(__name__)


class UserRepository(ABC):
    """Narrow view of the external user directory."""

    @abstractmethod
    async def get(self, user_id: str, for_update: bool = False) -> Optional[User]: ...

    @abstractmethod
    async def update_balance(self, user_id: str, balance: int) -> None: ...

    @abstractmethod
    async def insert(self, user: User) -> User: ...


class InventoryRepository(ABC):

    @abstractmethod
    async def list(self, user_id: str, item_id: Optional[str] = None,
                   for_update: bool = False) -> List[InventoryItem]:
        """Rows owned by ``user_id``, in insertion order."""

    @abstractmethod
    async def get_unique(self, user_id: str, item_id: str, unique_id: str,
                         for_update: bool = False) -> Optional[InventoryItem]: ...

    @abstractmethod
    async def find_stack(self, user_id: str, item_id: str, sellable: bool,
                         purchase_price: Optional[int],
                         for_update: bool = False) -> Optional[InventoryItem]: ...

    @abstractmethod
    async def insert(self, item: InventoryItem) -> InventoryItem: ...

    @abstractmethod
    async def update(self, item: InventoryItem) -> None:
        """Write back every column of the row with ``item.id``."""

    @abstractmethod
    async def delete(self, row_id: UUID) -> None: ...


class TradeRepository(ABC):

    @abstractmethod
    async def get(self, trade_id: UUID, for_update: bool = False) -> Optional[Trade]: ...

    @abstractmethod
    async def find_pending(self, user_a: str, user_b: str,
                           for_update: bool = False) -> Optional[Trade]:
        """Most recent pending trade between the unordered pair."""

    @abstractmethod
    async def list_by_user(self, user_id: str) -> List[Trade]: ...

    @abstractmethod
    async def insert(self, trade: Trade) -> Trade: ...

    @abstractmethod
    async def update(self, trade: Trade) -> None: ...


class ListingRepository(ABC):

    @abstractmethod
    async def get(self, listing_id: UUID, for_update: bool = False) -> Optional[MarketListing]: ...

    @abstractmethod
    async def list_by_seller(self, seller_id: str) -> List[MarketListing]: ...

    @abstractmethod
    async def list_active(self, item_id: Optional[str] = None, limit: Optional[int] = None,
                          offset: int = 0) -> List[MarketListing]:
        """Active listings. Per item: cheapest first; otherwise newest first."""

    @abstractmethod
    async def best_ask(self, item_id: str, max_price: int) -> Optional[MarketListing]:
        """Cheapest active listing at or under ``max_price``, oldest on ties."""

    @abstractmethod
    async def insert(self, listing: MarketListing) -> MarketListing: ...

    @abstractmethod
    async def update(self, listing: MarketListing) -> None: ...


class BuyOrderRepository(ABC):

    @abstractmethod
    async def get(self, order_id: UUID, for_update: bool = False) -> Optional[BuyOrder]: ...

    @abstractmethod
    async def list_by_buyer(self, buyer_id: str) -> List[BuyOrder]: ...

    @abstractmethod
    async def list_active(self, item_id: str) -> List[BuyOrder]:
        """Active orders for the item, highest price first, oldest on ties."""

    @abstractmethod
    async def best_bid(self, item_id: str, min_price: int) -> Optional[BuyOrder]:
        """Highest active order at or above ``min_price``, oldest on ties."""

    @abstractmethod
    async def insert(self, order: BuyOrder) -> BuyOrder: ...

    @abstractmethod
    async def update(self, order: BuyOrder) -> None: ...


class Session:
    """Repositories bound to one open transaction."""

    def __init__(self, users: UserRepository, inventories: InventoryRepository,
                 trades: TradeRepository, listings: ListingRepository,
                 buy_orders: BuyOrderRepository):
        self.users = users
        self.inventories = inventories
        self.trades = trades
        self.listings = listings
        self.buy_orders = buy_orders


class Store(ABC):

    @abstractmethod
    def transaction(self) -> AsyncContextManager[Session]: ...

    async def close(self) -> None:
        pass


def _conflict_tries() -> int:
    from config import settings_conf
    return settings_conf['max_conflict_retries']


def retry_on_conflict(func):
    """Re-run a whole engine operation when its transaction lost a race.

    Only ``TransactionConflictError`` is retried; business errors propagate
    on the first attempt.
    """
    @backoff.on_exception(
        backoff.expo,
        TransactionConflictError,
        max_tries=_conflict_tries,
        max_value=2,
        on_backoff=lambda details: logger.warning(
            f"Transaction conflict in {details['target'].__name__}, "
            f"retry {details['tries']}"
        )
    )
    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        return await func(*args, **kwargs)
    return wrapper
