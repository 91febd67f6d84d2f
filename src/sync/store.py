"""Storage seam for the sync engine.

The puller reads through ``SyncStore.fetch_delta``; adapters write through a
``StoreTransaction`` obtained from ``SyncStore.transaction()`` so that every
record-level upsert or delete commits or rolls back as a unit.

Write semantics every backend must honour:

    upsert       Insert if absent (stamping ``server_created_at`` and
                 ``last_modified`` with the store clock).  If present,
                 overwrite the client columns and bump ``last_modified``,
                 unless the stored row is soft-deleted, the incoming
                 ``updated_at`` is older than the stored one, or nothing
                 would change.  Returns True when a row was written.
    soft_delete  Set ``is_deleted`` / ``deleted_at`` / ``last_modified`` on a
                 live row.  Already-deleted or unknown ids are a no-op.
                 Returns True when a row was written.

All server-side timestamps come from ``clock`` so they are comparable with
pull cursors, which come from the same clock.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, AsyncContextManager, Callable

from src.models.base import utc_now
from src.models.sync import DeltaBatch
from src.sync.entities import EntityDescriptor

Clock = Callable[[], datetime]


class StoreTransaction(ABC):
    """Write operations scoped to one storage transaction."""

    @abstractmethod
    async def upsert(self, entity: EntityDescriptor, row: dict[str, Any]) -> bool: ...

    @abstractmethod
    async def soft_delete(self, entity: EntityDescriptor, record_id: str) -> bool: ...


class SyncStore(ABC):
    """Backend-agnostic access to syncable tables."""

    def __init__(self, clock: Clock = utc_now) -> None:
        self.clock = clock

    @abstractmethod
    async def fetch_delta(self, entity: EntityDescriptor, since: datetime) -> DeltaBatch:
        """Return the created / updated / deleted sets for ``entity`` after ``since``."""

    @abstractmethod
    def transaction(self) -> AsyncContextManager[StoreTransaction]:
        """Open a transaction; it commits when the block exits cleanly."""

    @abstractmethod
    async def ping(self) -> bool:
        """Cheap connectivity probe for the health endpoint."""

    async def close(self) -> None:
        return None
