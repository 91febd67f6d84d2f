"""In-process sync store.

Holds every table as an ordered ``id → row`` dict.  Used for local
development (``STORAGE_BACKEND=memory``) and by the test-suite, where it
lets the delta and idempotency properties run without Postgres.

Transactions are serialised by an ``asyncio.Lock`` and staged in a private
overlay that is only merged into the tables when the block exits without
an exception, so a failing record leaves no partial writes behind.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncGenerator, Iterable

from src.models.base import utc_now
from src.models.sync import DeltaBatch
from src.sync.entities import EntityDescriptor
from src.sync.store import Clock, StoreTransaction, SyncStore

Table = dict[str, dict[str, Any]]


class _MemoryTransaction(StoreTransaction):
    def __init__(self, store: InMemorySyncStore) -> None:
        self._store = store
        self._staged: dict[tuple[str, str], dict[str, Any]] = {}

    def _current(self, table: str, record_id: str) -> dict[str, Any] | None:
        staged = self._staged.get((table, record_id))
        if staged is not None:
            return staged
        return self._store._tables[table].get(record_id)

    async def upsert(self, entity: EntityDescriptor, row: dict[str, Any]) -> bool:
        table = entity.server_table
        record_id = row["id"]
        now = self._store.clock()
        existing = self._current(table, record_id)

        if existing is None:
            self._staged[(table, record_id)] = {
                **row,
                "server_created_at": now,
                "last_modified": now,
                "is_deleted": False,
                "deleted_at": None,
            }
            return True

        if existing.get("is_deleted"):
            return False

        column = entity.conflict_column
        if column and existing.get(column) is not None and row.get(column) is not None:
            if row[column] < existing[column]:
                return False

        if all(existing.get(k) == v for k, v in row.items()):
            return False

        self._staged[(table, record_id)] = {**existing, **row, "last_modified": now}
        return True

    async def soft_delete(self, entity: EntityDescriptor, record_id: str) -> bool:
        table = entity.server_table
        existing = self._current(table, record_id)
        if existing is None or existing.get("is_deleted"):
            return False
        now = self._store.clock()
        self._staged[(table, record_id)] = {
            **existing,
            "is_deleted": True,
            "deleted_at": now,
            "last_modified": now,
        }
        return True

    def commit(self) -> None:
        for (table, record_id), row in self._staged.items():
            self._store._tables[table][record_id] = row
        self._staged.clear()


class InMemorySyncStore(SyncStore):
    """Sync store backed by plain dicts.

    Usage::

        store = InMemorySyncStore()
        store.seed("patients", [{"id": "p1", "server_created_at": ts, ...}])
        batch = await store.fetch_delta(patients_entity, since)
    """

    def __init__(self, clock: Clock = utc_now) -> None:
        super().__init__(clock)
        self._tables: defaultdict[str, Table] = defaultdict(dict)
        self._lock = asyncio.Lock()

    def seed(self, table: str, rows: Iterable[dict[str, Any]]) -> None:
        """Insert rows verbatim, bypassing the sync write rules."""
        for row in rows:
            self._tables[table][row["id"]] = dict(row)

    def rows(self, table: str) -> list[dict[str, Any]]:
        return [dict(r) for r in self._tables[table].values()]

    def get(self, table: str, record_id: str) -> dict[str, Any] | None:
        row = self._tables[table].get(record_id)
        return dict(row) if row is not None else None

    async def fetch_delta(self, entity: EntityDescriptor, since: datetime) -> DeltaBatch:
        rows = list(self._tables[entity.server_table].values())
        return DeltaBatch(
            created=[dict(r) for r in rows if entity.is_created(r, since)],
            updated=[dict(r) for r in rows if entity.is_updated(r, since)],
            deleted=[r["id"] for r in rows if entity.is_deleted(r, since)],
        )

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[StoreTransaction, None]:
        async with self._lock:
            txn = _MemoryTransaction(self)
            yield txn
            txn.commit()

    async def ping(self) -> bool:
        return True
