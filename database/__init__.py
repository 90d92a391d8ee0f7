"""Database module for the exchange store.

This module handles:
- Database connection pool initialization (CockroachDB via asyncpg)
- Schema management
- Selecting the process-wide ``Store`` the engine managers use
- Connection lifecycle
"""

import json
import logging
import ssl
from typing import Any, Dict, Optional
from urllib.parse import parse_qs, urlparse

import asyncpg
import backoff

from .exceptions import DatabaseError, DatabaseSchemaError, TransactionConflictError
from .lib.schema_manager import SchemaManager
from .memory import MemoryStore
from .postgres import PostgresStore
from .store import Session, Store, retry_on_conflict

logger = logging.getLogger(__name__)

_pool: Optional[asyncpg.Pool] = None
_store: Optional[Store] = None


def _get_ssl_context() -> ssl.SSLContext:
    """Create SSL context for CockroachDB Cloud connections."""
    ssl_context = ssl.create_default_context()
    ssl_context.verify_mode = ssl.CERT_REQUIRED
    ssl_context.check_hostname = True
    return ssl_context


def _get_connection_kwargs(db_url: str) -> Dict[str, Any]:
    """Get connection kwargs from database URL.

    Args:
        db_url: Database connection URL

    Returns:
        Dict of connection parameters
    """
    parsed = urlparse(db_url)
    params = parse_qs(parsed.query)

    kwargs: Dict[str, Any] = {}
    if params.get('sslmode', [''])[0] != 'disable':
        kwargs['ssl'] = _get_ssl_context()

    return kwargs


async def _init_connection(conn: asyncpg.Connection) -> None:
    """Decode JSONB columns (metadata, trade items) to Python objects."""
    await conn.set_type_codec(
        'jsonb',
        encoder=json.dumps,
        decoder=json.loads,
        schema='pg_catalog'
    )


@backoff.on_exception(
    backoff.expo,
    (asyncpg.exceptions.PostgresConnectionError, asyncpg.exceptions.CannotConnectNowError, OSError),
    max_tries=5
)
async def init_db(db_url: Optional[str] = None) -> None:
    """Initialize the database connection pool and schema.

    Args:
        db_url: Optional database URL. If not provided, will use settings.

    Raises:
        ValueError: If database URL is not provided
        Exception: If initialization fails after retries
    """
    global _pool

    try:
        # Import here to avoid circular imports
        from config import settings_conf

        url = db_url or settings_conf.get('db_url')
        if not url:
            raise ValueError("Database URL not provided")

        _pool = await asyncpg.create_pool(
            url,
            min_size=2,
            max_size=20,
            max_inactive_connection_lifetime=300.0,
            command_timeout=60.0,
            init=_init_connection,
            **_get_connection_kwargs(url)
        )

        await SchemaManager(_pool).initialize()
        logger.info("Database initialized")

    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        raise


async def get_pool() -> asyncpg.Pool:
    """Get the database connection pool.

    Raises:
        RuntimeError: If pool hasn't been initialized
    """
    if not _pool:
        await init_db()
    if not _pool:
        raise RuntimeError("Failed to initialize database pool")
    return _pool


async def get_store() -> Store:
    """Get the process-wide store, creating it from settings on first use.

    ``store_backend = memory`` keeps everything in process;
    ``store_backend = postgres`` (default) uses the connection pool.
    """
    global _store

    if _store is None:
        from config import settings_conf

        backend = settings_conf['store_backend']
        if backend == 'memory':
            _store = MemoryStore()
        else:
            _store = PostgresStore(await get_pool())
        logger.info(f"Using {backend} store")
    return _store


def set_store(store: Optional[Store]) -> None:
    """Install (or with ``None``, reset) the process-wide store."""
    global _store
    _store = store


async def close() -> None:
    """Close the database connection pool and drop the store."""
    global _pool, _store

    if _pool:
        await _pool.close()
        _pool = None
    _store = None


# Export public interface
__all__ = [
    'init_db',
    'get_pool',
    'get_store',
    'set_store',
    'close',
    'Store',
    'Session',
    'MemoryStore',
    'PostgresStore',
    'retry_on_conflict',
    'DatabaseError',
    'DatabaseSchemaError',
    'TransactionConflictError',
]
