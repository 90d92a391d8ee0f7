"""Tests for the asyncpg store and schema manager, against a fake pool."""
from contextlib import asynccontextmanager

import pytest
from asyncpg.exceptions import (
    DeadlockDetectedError,
    SerializationError,
    UndefinedTableError,
    UniqueViolationError,
)

from database.exceptions import DatabaseError, TransactionConflictError
from database.lib.schema_manager import (
    SchemaManager,
    create_index_sql,
    create_table_sql,
    load_schema_versions,
)
from database.postgres import PostgresStore, PostgresTradeRepository
from database.schema.v1 import schema as v1

PENDING_PAIR_INDEX = (
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_trades_pending_pair "
    "ON trades (pair_low, pair_high) WHERE status = 'pending'"
)


class FakeTransaction:
    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeConnection:
    """Records every statement; ``fetchrow`` answers with a fixed row."""

    def __init__(self, row=None):
        self.row = row
        self.executed = []
        self.fetched = []

    def transaction(self):
        return FakeTransaction()

    async def execute(self, query, *args):
        self.executed.append(" ".join(query.split()))

    async def fetchrow(self, query, *args):
        self.fetched.append((" ".join(query.split()), args))
        return self.row


class FakePool:
    def __init__(self, conn):
        self.conn = conn

    @asynccontextmanager
    async def acquire(self):
        yield self.conn


def table(name):
    return next(t for t in v1['tables'] if t['name'] == name)


def test_create_table_sql():
    sql = create_table_sql(table('users'))

    assert sql.startswith("CREATE TABLE IF NOT EXISTS users (")
    assert "user_id TEXT" in sql
    assert "balance INT8 DEFAULT 0 NOT NULL" in sql
    assert "PRIMARY KEY (user_id)" in sql
    assert sql.endswith("CHECK (balance >= 0))")


def test_create_index_sql():
    trades = table('trades')
    indexes = {i['name']: i for i in trades['indexes']}

    assert create_index_sql('trades', indexes['idx_trades_pending_pair']) == PENDING_PAIR_INDEX
    assert create_index_sql('trades', indexes['idx_trades_from_user']) == (
        "CREATE INDEX IF NOT EXISTS idx_trades_from_user ON trades (from_user_id)"
    )


def test_schema_versions_load():
    versions = load_schema_versions()

    assert list(versions) == [1]
    assert {t['name'] for t in versions[1]['tables']} == {
        'users', 'inventories', 'trades', 'market_listings', 'buy_orders'
    }


@pytest.mark.asyncio
async def test_fresh_schema_created():
    conn = FakeConnection(row=None)
    manager = SchemaManager(FakePool(conn))

    await manager.initialize()

    assert manager.current_version == 1
    assert any(q.startswith("CREATE TABLE IF NOT EXISTS trades (") for q in conn.executed)
    assert PENDING_PAIR_INDEX in conn.executed
    assert conn.executed[-1] == "INSERT INTO schema_version (version) VALUES ($1)"


@pytest.mark.asyncio
async def test_current_schema_left_alone():
    conn = FakeConnection(row={'version': 1})
    manager = SchemaManager(FakePool(conn))

    await manager.initialize()

    assert manager.current_version == 1
    assert not any(q.startswith("CREATE TABLE IF NOT EXISTS trades") for q in conn.executed)


@pytest.mark.asyncio
async def test_find_pending_locks_unordered_pair():
    conn = FakeConnection(row=None)
    trades = PostgresTradeRepository(conn)

    assert await trades.find_pending("bob", "alice", for_update=True) is None

    [(query, args)] = conn.fetched
    assert args == ("alice", "bob")
    assert "status = 'pending'" in query
    assert query.endswith("FOR UPDATE")


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [UniqueViolationError, SerializationError, DeadlockDetectedError])
async def test_races_raise_transaction_conflict(error):
    store = PostgresStore(FakePool(FakeConnection()))

    with pytest.raises(TransactionConflictError):
        async with store.transaction():
            raise error("lost the race")


@pytest.mark.asyncio
async def test_other_postgres_errors_raise_database_error():
    store = PostgresStore(FakePool(FakeConnection()))

    with pytest.raises(DatabaseError) as exc:
        async with store.transaction():
            raise UndefinedTableError("relation does not exist")
    assert not isinstance(exc.value, TransactionConflictError)


@pytest.mark.asyncio
async def test_session_repositories_share_connection():
    conn = FakeConnection()
    store = PostgresStore(FakePool(conn))

    async with store.transaction() as session:
        assert session.trades.conn is conn
        assert session.inventories.conn is conn
        assert session.buy_orders.conn is conn

    with pytest.raises(ValueError):
        async with store.transaction():
            raise ValueError("not a database error")
