"""Shared fixtures: an in-memory store seeded with a few users."""
import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from api import app
from config import settings_conf
from credits import CreditManager
from database import MemoryStore, set_store
from database.models import User
from inventory import InventoryManager
from listings import ListingManager
from orders import BuyOrderManager
from trades import TradeManager

# Test data
BALANCES = {
    "alice": 1000,
    "bob": 1000,
    "carol": 150,
    "dave": 0,
}


def add_user(store: MemoryStore, user_id: str, balance: int = 0) -> None:
    """Insert a user row directly, outside any transaction."""
    store.tables['users'].put(user_id, User(user_id=user_id, balance=balance), next(store.counter))


def total_credits(store: MemoryStore) -> int:
    return sum(user.balance for user in store.tables['users'].rows.values())


@pytest_asyncio.fixture
async def store():
    """Create a fresh memory store and install it as the process-wide store."""
    memory = MemoryStore()
    for user_id, balance in BALANCES.items():
        add_user(memory, user_id, balance)
    set_store(memory)
    yield memory
    set_store(None)


@pytest.fixture
def client(monkeypatch):
    """API client over a fresh memory store, with ``admin`` as administrator."""
    monkeypatch.setitem(settings_conf, 'admin_users', ("admin",))
    memory = MemoryStore()
    for user_id, balance in BALANCES.items():
        add_user(memory, user_id, balance)
    set_store(memory)
    yield TestClient(app)
    set_store(None)


@pytest_asyncio.fixture
async def credit_total(store):
    """Callable returning the sum of every user's balance."""
    return lambda: total_credits(store)


@pytest_asyncio.fixture
async def inventory(store):
    return InventoryManager(store)


@pytest_asyncio.fixture
async def credits(store):
    return CreditManager(store)


@pytest_asyncio.fixture
async def trades(store):
    return TradeManager(store)


@pytest_asyncio.fixture
async def listings(store):
    return ListingManager(store)


@pytest_asyncio.fixture
async def orders(store):
    return BuyOrderManager(store)
