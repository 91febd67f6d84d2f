"""asyncpg connection pool.

One pool per process, created in the app lifespan and closed on shutdown.
JSON and JSONB columns are decoded to Python objects on the way out and
encoded on the way in, so sync records travel as plain dicts.
"""

from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

import asyncpg

from src.config import Settings, get_settings

logger = logging.getLogger("clinisync.db")

# Module-level connection pool, initialized once at app startup
_pool: asyncpg.Pool | None = None


def _encode_json(value: Any) -> str:
    # Mobile clients often send JSON columns already serialised
    if isinstance(value, str):
        return value
    return json.dumps(value)


async def _init_connection(conn: asyncpg.Connection) -> None:
    for typename in ("json", "jsonb"):
        await conn.set_type_codec(
            typename,
            encoder=_encode_json,
            decoder=json.loads,
            schema="pg_catalog",
        )


async def init_pool(settings: Settings | None = None) -> asyncpg.Pool:
    """Create the asyncpg connection pool. Call once at app startup."""
    global _pool
    s = settings or get_settings()
    _pool = await asyncpg.create_pool(
        s.database_url,
        min_size=s.db_pool_min_size,
        max_size=s.db_pool_max_size,
        command_timeout=s.db_command_timeout,
        init=_init_connection,
    )
    logger.info(
        "Database pool initialized (min=%d, max=%d)",
        s.db_pool_min_size,
        s.db_pool_max_size,
    )
    return _pool


async def close_pool() -> None:
    """Drain the pool. Call at app shutdown."""
    global _pool
    if _pool:
        await _pool.close()
        _pool = None
        logger.info("Database pool closed")


def get_pool() -> asyncpg.Pool:
    if _pool is None:
        raise RuntimeError("Database pool not initialized — call init_pool() first")
    return _pool


@asynccontextmanager
async def get_connection(
    pool: asyncpg.Pool | None = None,
    readonly: bool = False,
) -> AsyncGenerator[asyncpg.Connection, None]:
    """Acquire a connection inside a transaction.

    Usage::

        async with get_connection() as conn:
            rows = await conn.fetch("SELECT * FROM patients WHERE id = $1", pid)

    Read-only blocks run at REPEATABLE READ so several queries see one snapshot.
    """
    pool = pool or get_pool()
    async with pool.acquire() as conn:
        if readonly:
            txn = conn.transaction(isolation="repeatable_read", readonly=True)
        else:
            txn = conn.transaction()
        async with txn:
            yield conn
