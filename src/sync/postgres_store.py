"""Postgres sync store (asyncpg).

Delta queries for one entity run in a single read-only REPEATABLE READ
transaction so the created / updated / deleted sets come from the same
snapshot.  Each write transaction holds one pooled connection.

Client payload keys are matched against the table's real columns, read once
from ``information_schema`` and cached; unknown keys are dropped.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncGenerator

import asyncpg

from src.models.base import utc_now
from src.models.sync import DeltaBatch
from src.services.database import get_connection
from src.sync.entities import EntityDescriptor
from src.sync.sql import build_delta_query, build_soft_delete_query, build_upsert_query
from src.sync.store import Clock, StoreTransaction, SyncStore

logger = logging.getLogger("clinisync.sync.postgres_store")

_COLUMNS_QUERY = (
    "SELECT column_name FROM information_schema.columns "
    "WHERE table_schema = current_schema() AND table_name = $1"
)


def _written(status: str) -> bool:
    # "INSERT 0 1" / "UPDATE 1" when a row changed, "... 0" otherwise
    return status.rsplit(" ", 1)[-1] != "0"


def _cursor_args(where: str, since: datetime) -> tuple[Any, ...]:
    return (since,) if "$1" in where else ()


class _PostgresTransaction(StoreTransaction):
    def __init__(self, store: PostgresSyncStore, conn: asyncpg.Connection) -> None:
        self._store = store
        self._conn = conn

    async def upsert(self, entity: EntityDescriptor, row: dict[str, Any]) -> bool:
        table = entity.server_table
        known = await self._store.columns(table, self._conn)
        dropped = [k for k in row if k not in known]
        if dropped:
            logger.debug("Dropping unknown columns for %s: %s", table, dropped)
        data = {k: v for k, v in row.items() if k in known}
        now = self._store.clock()

        client_columns = [c for c in data if c != "id"]
        columns = ["id", *client_columns, "server_created_at", "last_modified", "is_deleted"]
        guards = [f"{table}.is_deleted = false"]
        conflict_column = entity.conflict_column
        if conflict_column and conflict_column in data:
            guards.append(
                f"({table}.{conflict_column} IS NULL "
                f"OR EXCLUDED.{conflict_column} IS NULL "
                f"OR EXCLUDED.{conflict_column} >= {table}.{conflict_column})"
            )

        query = build_upsert_query(
            table,
            columns,
            conflict_columns=["id"],
            update_columns=client_columns,
            extra_updates=["last_modified"],
            guards=guards,
        )
        status = await self._conn.execute(
            query,
            data["id"],
            *(data[c] for c in client_columns),
            now,
            now,
            False,
        )
        return _written(status)

    async def soft_delete(self, entity: EntityDescriptor, record_id: str) -> bool:
        status = await self._conn.execute(
            build_soft_delete_query(entity.server_table),
            record_id,
            self._store.clock(),
        )
        return _written(status)


class PostgresSyncStore(SyncStore):
    """Sync store backed by an asyncpg pool."""

    def __init__(self, pool: asyncpg.Pool, clock: Clock = utc_now) -> None:
        super().__init__(clock)
        self._pool = pool
        self._columns: dict[str, frozenset[str]] = {}

    async def columns(self, table: str, conn: asyncpg.Connection) -> frozenset[str]:
        """Return the column names of ``table``, cached after the first lookup."""
        cached = self._columns.get(table)
        if cached is None:
            rows = await conn.fetch(_COLUMNS_QUERY, table)
            if not rows:
                raise LookupError(f"Table '{table}' does not exist")
            cached = frozenset(r["column_name"] for r in rows)
            self._columns[table] = cached
        return cached

    async def fetch_delta(self, entity: EntityDescriptor, since: datetime) -> DeltaBatch:
        table = entity.server_table
        async with get_connection(self._pool, readonly=True) as conn:
            created_where = entity.created_where()
            created = await conn.fetch(
                build_delta_query(table, created_where), *_cursor_args(created_where, since)
            )

            updated: list[asyncpg.Record] = []
            updated_where = entity.updated_where()
            if updated_where:
                updated = await conn.fetch(
                    build_delta_query(table, updated_where), *_cursor_args(updated_where, since)
                )

            deleted: list[asyncpg.Record] = []
            deleted_where = entity.deleted_where()
            if deleted_where:
                deleted = await conn.fetch(
                    build_delta_query(table, deleted_where, columns="id"),
                    *_cursor_args(deleted_where, since),
                )

        return DeltaBatch(
            created=[dict(r) for r in created],
            updated=[dict(r) for r in updated],
            deleted=[str(r["id"]) for r in deleted],
        )

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[StoreTransaction, None]:
        async with get_connection(self._pool) as conn:
            yield _PostgresTransaction(self, conn)

    async def ping(self) -> bool:
        async with self._pool.acquire() as conn:
            await conn.fetchval("SELECT 1")
        return True
