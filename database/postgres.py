"""asyncpg store backend for CockroachDB.

Each ``transaction()`` acquires a pooled connection and opens a database
transaction on it. Rows read for mutation are locked with ``FOR UPDATE``.
Serialization failures, deadlocks and unique-constraint races (e.g. two
pending trades for the same pair) are raised as
``TransactionConflictError`` so the engine can retry the whole operation.
"""
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List

from asyncpg.exceptions import (
    DeadlockDetectedError,
    PostgresError,
    SerializationError,
    UniqueViolationError,
)
from asyncpg.pool import Pool

from .exceptions import DatabaseError, TransactionConflictError
from .models import BuyOrder, InventoryItem, MarketListing, Trade, User
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


def _lock(for_update: bool) -> str:
    return ' FOR UPDATE' if for_update else ''


class _PostgresRepository:
    def __init__(self, conn):
        self.conn = conn


class PostgresUserRepository(_PostgresRepository, UserRepository):

    async def get(self, user_id, for_update=False):
        row = await self.conn.fetchrow(
            f'SELECT * FROM users WHERE user_id = $1{_lock(for_update)}',
            user_id
        )
        return User.model_validate(dict(row)) if row else None

    async def update_balance(self, user_id, balance):
        await self.conn.execute(
            'UPDATE users SET balance = $1, updated_at = now() WHERE user_id = $2',
            balance, user_id
        )

    async def insert(self, user):
        await self.conn.execute(
            'INSERT INTO users (user_id, username, balance) VALUES ($1, $2, $3)',
            user.user_id, user.username, user.balance
        )
        return user


class PostgresInventoryRepository(_PostgresRepository, InventoryRepository):

    @staticmethod
    def _to_model(row) -> InventoryItem:
        return InventoryItem.model_validate(dict(row))

    async def list(self, user_id, item_id=None, for_update=False):
        if item_id is None:
            rows = await self.conn.fetch(
                f'SELECT * FROM inventories WHERE user_id = $1 ORDER BY seq{_lock(for_update)}',
                user_id
            )
        else:
            rows = await self.conn.fetch(
                f'''
                SELECT * FROM inventories
                WHERE user_id = $1 AND item_id = $2
                ORDER BY seq{_lock(for_update)}
                ''',
                user_id, item_id
            )
        return [self._to_model(r) for r in rows]

    async def get_unique(self, user_id, item_id, unique_id, for_update=False):
        row = await self.conn.fetchrow(
            f'''
            SELECT * FROM inventories
            WHERE user_id = $1 AND item_id = $2 AND unique_id = $3{_lock(for_update)}
            ''',
            user_id, item_id, unique_id
        )
        return self._to_model(row) if row else None

    async def find_stack(self, user_id, item_id, sellable, purchase_price, for_update=False):
        row = await self.conn.fetchrow(
            f'''
            SELECT * FROM inventories
            WHERE user_id = $1 AND item_id = $2 AND unique_id IS NULL
              AND sellable = $3 AND purchase_price IS NOT DISTINCT FROM $4
            ORDER BY seq
            LIMIT 1{_lock(for_update)}
            ''',
            user_id, item_id, sellable, purchase_price
        )
        return self._to_model(row) if row else None

    async def insert(self, item):
        await self.conn.execute(
            '''
            INSERT INTO inventories (
                id, user_id, item_id, amount, metadata, unique_id,
                sellable, purchase_price, rarity
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
            ''',
            item.id, item.user_id, item.item_id, item.amount, item.metadata,
            item.unique_id, item.sellable, item.purchase_price, item.rarity
        )
        return item

    async def update(self, item):
        await self.conn.execute(
            '''
            UPDATE inventories
            SET user_id = $2, amount = $3, metadata = $4, sellable = $5,
                purchase_price = $6, rarity = $7
            WHERE id = $1
            ''',
            item.id, item.user_id, item.amount, item.metadata, item.sellable,
            item.purchase_price, item.rarity
        )

    async def delete(self, row_id):
        await self.conn.execute('DELETE FROM inventories WHERE id = $1', row_id)


class PostgresTradeRepository(_PostgresRepository, TradeRepository):

    @staticmethod
    def _to_model(row) -> Trade:
        return Trade.model_validate(dict(row))

    @staticmethod
    def _items(items) -> List[Dict[str, Any]]:
        return [item.model_dump(mode='json') for item in items]

    async def get(self, trade_id, for_update=False):
        row = await self.conn.fetchrow(
            f'SELECT * FROM trades WHERE id = $1{_lock(for_update)}',
            trade_id
        )
        return self._to_model(row) if row else None

    async def find_pending(self, user_a, user_b, for_update=False):
        low, high = sorted((user_a, user_b))
        row = await self.conn.fetchrow(
            f'''
            SELECT * FROM trades
            WHERE status = 'pending' AND pair_low = $1 AND pair_high = $2
            ORDER BY created_at DESC
            LIMIT 1{_lock(for_update)}
            ''',
            low, high
        )
        return self._to_model(row) if row else None

    async def list_by_user(self, user_id):
        rows = await self.conn.fetch(
            '''
            SELECT * FROM trades
            WHERE from_user_id = $1 OR to_user_id = $1
            ORDER BY created_at DESC
            ''',
            user_id
        )
        return [self._to_model(r) for r in rows]

    async def insert(self, trade):
        low, high = trade.pair
        await self.conn.execute(
            '''
            INSERT INTO trades (
                id, from_user_id, to_user_id, pair_low, pair_high,
                from_user_items, to_user_items, approved_from_user,
                approved_to_user, status, created_at, updated_at
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12)
            ''',
            trade.id, trade.from_user_id, trade.to_user_id, low, high,
            self._items(trade.from_user_items), self._items(trade.to_user_items),
            trade.approved_from_user, trade.approved_to_user, trade.status.value,
            trade.created_at, trade.updated_at
        )
        return trade

    async def update(self, trade):
        await self.conn.execute(
            '''
            UPDATE trades
            SET from_user_items = $2, to_user_items = $3,
                approved_from_user = $4, approved_to_user = $5,
                status = $6, updated_at = $7
            WHERE id = $1
            ''',
            trade.id, self._items(trade.from_user_items), self._items(trade.to_user_items),
            trade.approved_from_user, trade.approved_to_user, trade.status.value,
            trade.updated_at
        )


class PostgresListingRepository(_PostgresRepository, ListingRepository):

    @staticmethod
    def _to_model(row) -> MarketListing:
        return MarketListing.model_validate(dict(row))

    async def get(self, listing_id, for_update=False):
        row = await self.conn.fetchrow(
            f'SELECT * FROM market_listings WHERE id = $1{_lock(for_update)}',
            listing_id
        )
        return self._to_model(row) if row else None

    async def list_by_seller(self, seller_id):
        rows = await self.conn.fetch(
            'SELECT * FROM market_listings WHERE seller_id = $1 ORDER BY created_at DESC, seq DESC',
            seller_id
        )
        return [self._to_model(r) for r in rows]

    async def list_active(self, item_id=None, limit=None, offset=0):
        conditions = ["status = 'active'"]
        args: List[Any] = []
        if item_id is not None:
            args.append(item_id)
            conditions.append(f'item_id = ${len(args)}')
            order = 'price ASC, created_at ASC, seq ASC'
        else:
            order = 'created_at DESC, seq DESC'
        query = f"SELECT * FROM market_listings WHERE {' AND '.join(conditions)} ORDER BY {order}"
        if limit is not None:
            args.append(limit)
            query += f' LIMIT ${len(args)}'
        args.append(offset)
        query += f' OFFSET ${len(args)}'
        rows = await self.conn.fetch(query, *args)
        return [self._to_model(r) for r in rows]

    async def best_ask(self, item_id, max_price):
        row = await self.conn.fetchrow(
            '''
            SELECT * FROM market_listings
            WHERE item_id = $1 AND status = 'active' AND price <= $2
            ORDER BY price ASC, created_at ASC, seq ASC
            LIMIT 1
            FOR UPDATE
            ''',
            item_id, max_price
        )
        return self._to_model(row) if row else None

    async def insert(self, listing):
        await self.conn.execute(
            '''
            INSERT INTO market_listings (
                id, seller_id, item_id, price, status, metadata, unique_id,
                purchase_price, rarity, created_at, updated_at
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11)
            ''',
            listing.id, listing.seller_id, listing.item_id, listing.price,
            listing.status.value, listing.metadata, listing.unique_id,
            listing.purchase_price, listing.rarity, listing.created_at,
            listing.updated_at
        )
        return listing

    async def update(self, listing):
        await self.conn.execute(
            '''
            UPDATE market_listings
            SET status = $2, updated_at = $3, sold_at = $4, buyer_id = $5
            WHERE id = $1
            ''',
            listing.id, listing.status.value, listing.updated_at,
            listing.sold_at, listing.buyer_id
        )


class PostgresBuyOrderRepository(_PostgresRepository, BuyOrderRepository):

    @staticmethod
    def _to_model(row) -> BuyOrder:
        return BuyOrder.model_validate(dict(row))

    async def get(self, order_id, for_update=False):
        row = await self.conn.fetchrow(
            f'SELECT * FROM buy_orders WHERE id = $1{_lock(for_update)}',
            order_id
        )
        return self._to_model(row) if row else None

    async def list_by_buyer(self, buyer_id):
        rows = await self.conn.fetch(
            'SELECT * FROM buy_orders WHERE buyer_id = $1 ORDER BY created_at DESC, seq DESC',
            buyer_id
        )
        return [self._to_model(r) for r in rows]

    async def list_active(self, item_id):
        rows = await self.conn.fetch(
            '''
            SELECT * FROM buy_orders
            WHERE item_id = $1 AND status = 'active'
            ORDER BY price DESC, created_at ASC, seq ASC
            ''',
            item_id
        )
        return [self._to_model(r) for r in rows]

    async def best_bid(self, item_id, min_price):
        row = await self.conn.fetchrow(
            '''
            SELECT * FROM buy_orders
            WHERE item_id = $1 AND status = 'active' AND price >= $2
            ORDER BY price DESC, created_at ASC, seq ASC
            LIMIT 1
            FOR UPDATE
            ''',
            item_id, min_price
        )
        return self._to_model(row) if row else None

    async def insert(self, order):
        await self.conn.execute(
            '''
            INSERT INTO buy_orders (
                id, buyer_id, item_id, price, status, created_at, updated_at
            ) VALUES ($1, $2, $3, $4, $5, $6, $7)
            ''',
            order.id, order.buyer_id, order.item_id, order.price,
            order.status.value, order.created_at, order.updated_at
        )
        return order

    async def update(self, order):
        await self.conn.execute(
            '''
            UPDATE buy_orders
            SET status = $2, updated_at = $3, fulfilled_at = $4, sale_id = $5
            WHERE id = $1
            ''',
            order.id, order.status.value, order.updated_at,
            order.fulfilled_at, order.sale_id
        )


class PostgresStore(Store):
    """Store backed by an asyncpg connection pool."""

    def __init__(self, pool: Pool):
        self.pool = pool

    @asynccontextmanager
    async def transaction(self):
        async with self.pool.acquire() as conn:
            try:
                async with conn.transaction():
                    yield Session(
                        users=PostgresUserRepository(conn),
                        inventories=PostgresInventoryRepository(conn),
                        trades=PostgresTradeRepository(conn),
                        listings=PostgresListingRepository(conn),
                        buy_orders=PostgresBuyOrderRepository(conn),
                    )
            except (SerializationError, DeadlockDetectedError, UniqueViolationError) as e:
                logger.warning(f"Transaction conflict: {e}")
                raise TransactionConflictError(str(e)) from e
            except PostgresError as e:
                logger.error(f"Database error: {e}")
                raise DatabaseError(str(e)) from e

    async def close(self) -> None:
        await self.pool.close()
