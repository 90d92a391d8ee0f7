"""In-process store backend.

Keeps every table in dictionaries. Transactions are serialized by a single
``asyncio.Lock`` and rolled back by restoring a snapshot taken on entry, so
each engine operation observes and commits a consistent state. Used for
tests and single-process deployments (``store_backend = memory``).
"""
import asyncio
import copy
import itertools
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from .models import BuyOrderStatus, ListingStatus, TradeStatus
from .store import (
    BuyOrderRepository,
    InventoryRepository,
    ListingRepository,
    Session,
    Store,
    TradeRepository,
    UserRepository,
)

logger = logging.getLogger(__name__)

TABLES = ('users', 'inventories', 'trades', 'market_listings', 'buy_orders')


class _Table:
    """Rows keyed by primary key, remembering insertion order."""

    def __init__(self):
        self.rows: Dict[Any, Any] = {}
        self.seq: Dict[Any, int] = {}

    def put(self, key, row, seq: Optional[int] = None) -> None:
        if key not in self.seq:
            self.seq[key] = seq
        self.rows[key] = row.model_copy(deep=True)

    def get(self, key):
        row = self.rows.get(key)
        return row.model_copy(deep=True) if row is not None else None

    def remove(self, key) -> None:
        self.rows.pop(key, None)
        self.seq.pop(key, None)

    def select(self, predicate=lambda row: True) -> List[Any]:
        """Matching rows as copies, in insertion order."""
        keys = sorted(self.rows, key=lambda k: self.seq[k])
        return [self.rows[k].model_copy(deep=True) for k in keys if predicate(self.rows[k])]

    def order_of(self, row) -> int:
        return self.seq[row.id]


class _MemoryRepository:
    def __init__(self, store: 'MemoryStore', table: str):
        self._store = store
        self._table: _Table = store.tables[table]

    def _next_seq(self) -> int:
        return next(self._store.counter)


class MemoryUserRepository(_MemoryRepository, UserRepository):

    def __init__(self, store):
        super().__init__(store, 'users')

    async def get(self, user_id, for_update=False):
        return self._table.get(user_id)

    async def update_balance(self, user_id, balance):
        user = self._table.rows[user_id]
        self._table.put(user_id, user.model_copy(update={'balance': balance}))

    async def insert(self, user):
        self._table.put(user.user_id, user, self._next_seq())
        return user.model_copy(deep=True)


class MemoryInventoryRepository(_MemoryRepository, InventoryRepository):

    def __init__(self, store):
        super().__init__(store, 'inventories')

    async def list(self, user_id, item_id=None, for_update=False):
        return self._table.select(
            lambda r: r.user_id == user_id and (item_id is None or r.item_id == item_id)
        )

    async def get_unique(self, user_id, item_id, unique_id, for_update=False):
        rows = self._table.select(
            lambda r: r.user_id == user_id and r.item_id == item_id and r.unique_id == unique_id
        )
        return rows[0] if rows else None

    async def find_stack(self, user_id, item_id, sellable, purchase_price, for_update=False):
        rows = self._table.select(
            lambda r: (r.user_id == user_id and r.item_id == item_id and not r.is_unique
                       and r.sellable == sellable and r.purchase_price == purchase_price)
        )
        return rows[0] if rows else None

    async def insert(self, item):
        self._table.put(item.id, item, self._next_seq())
        return item.model_copy(deep=True)

    async def update(self, item):
        if item.id not in self._table.rows:
            raise KeyError(f"Inventory row {item.id} does not exist")
        self._table.put(item.id, item)

    async def delete(self, row_id):
        self._table.remove(row_id)


class MemoryTradeRepository(_MemoryRepository, TradeRepository):

    def __init__(self, store):
        super().__init__(store, 'trades')

    async def get(self, trade_id, for_update=False):
        return self._table.get(trade_id)

    async def find_pending(self, user_a, user_b, for_update=False):
        pair = tuple(sorted((user_a, user_b)))
        rows = self._table.select(
            lambda t: t.status == TradeStatus.PENDING and t.pair == pair
        )
        rows.sort(key=lambda t: (t.created_at, self._table.order_of(t)), reverse=True)
        return rows[0] if rows else None

    async def list_by_user(self, user_id):
        rows = self._table.select(lambda t: t.involves(user_id))
        rows.sort(key=lambda t: (t.created_at, self._table.order_of(t)), reverse=True)
        return rows

    async def insert(self, trade):
        self._table.put(trade.id, trade, self._next_seq())
        return trade.model_copy(deep=True)

    async def update(self, trade):
        self._table.put(trade.id, trade)


class MemoryListingRepository(_MemoryRepository, ListingRepository):

    def __init__(self, store):
        super().__init__(store, 'market_listings')

    def _time_key(self, listing):
        return (listing.created_at, self._table.order_of(listing))

    async def get(self, listing_id, for_update=False):
        return self._table.get(listing_id)

    async def list_by_seller(self, seller_id):
        rows = self._table.select(lambda l: l.seller_id == seller_id)
        rows.sort(key=self._time_key, reverse=True)
        return rows

    async def list_active(self, item_id=None, limit=None, offset=0):
        rows = self._table.select(
            lambda l: l.status == ListingStatus.ACTIVE and (item_id is None or l.item_id == item_id)
        )
        if item_id is not None:
            rows.sort(key=lambda l: (l.price,) + self._time_key(l))
        else:
            rows.sort(key=self._time_key, reverse=True)
        rows = rows[offset:]
        return rows[:limit] if limit is not None else rows

    async def best_ask(self, item_id, max_price):
        candidates = [l for l in await self.list_active(item_id) if l.price <= max_price]
        return candidates[0] if candidates else None

    async def insert(self, listing):
        self._table.put(listing.id, listing, self._next_seq())
        return listing.model_copy(deep=True)

    async def update(self, listing):
        self._table.put(listing.id, listing)


class MemoryBuyOrderRepository(_MemoryRepository, BuyOrderRepository):

    def __init__(self, store):
        super().__init__(store, 'buy_orders')

    def _time_key(self, order):
        return (order.created_at, self._table.order_of(order))

    async def get(self, order_id, for_update=False):
        return self._table.get(order_id)

    async def list_by_buyer(self, buyer_id):
        rows = self._table.select(lambda o: o.buyer_id == buyer_id)
        rows.sort(key=self._time_key, reverse=True)
        return rows

    async def list_active(self, item_id):
        rows = self._table.select(
            lambda o: o.status == BuyOrderStatus.ACTIVE and o.item_id == item_id
        )
        rows.sort(key=lambda o: (-o.price,) + self._time_key(o))
        return rows

    async def best_bid(self, item_id, min_price):
        candidates = [o for o in await self.list_active(item_id) if o.price >= min_price]
        return candidates[0] if candidates else None

    async def insert(self, order):
        self._table.put(order.id, order, self._next_seq())
        return order.model_copy(deep=True)

    async def update(self, order):
        self._table.put(order.id, order)


class MemoryStore(Store):
    """Dictionary-backed store with serialized, all-or-nothing transactions."""

    def __init__(self):
        self.tables: Dict[str, _Table] = {name: _Table() for name in TABLES}
        self.counter = itertools.count(1)
        self._lock = asyncio.Lock()

    @asynccontextmanager
    async def transaction(self):
        async with self._lock:
            snapshot = copy.deepcopy(self.tables)
            session = Session(
                users=MemoryUserRepository(self),
                inventories=MemoryInventoryRepository(self),
                trades=MemoryTradeRepository(self),
                listings=MemoryListingRepository(self),
                buy_orders=MemoryBuyOrderRepository(self),
            )
            try:
                yield session
            except BaseException:
                # Repositories hold references to the live tables, so the
                # snapshot is copied back into them rather than swapped in.
                for name, table in snapshot.items():
                    self.tables[name].rows = table.rows
                    self.tables[name].seq = table.seq
                logger.debug("Memory transaction rolled back")
                raise

    def clear(self) -> None:
        for table in self.tables.values():
            table.rows.clear()
            table.seq.clear()
