"""Delta persister — applies a client's offline-authored changes.

For every table in the push batch:
1. Resolve the mobile table name to its adapter (unknown / read-only → rejected)
2. Upsert every record in ``created + updated``
3. Soft-delete every id in ``deleted``

Failure policy: tables are isolated from one another.  The first failing
record stops its own table (remaining records and deletions of that table
are skipped) and is reported in ``failed``; every other table is still
applied.  There is no cross-table transaction, only one per record, and
every write is idempotent, so a client may resend the same batch safely.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping

from pydantic import ValidationError

from src.models.sync import DeltaBatch, PushResponse
from src.sync.adapters import SyncAdapter
from src.sync.errors import (
    ApplyError,
    InvalidRecordError,
    TableNotWritableError,
    UnknownTableError,
)
from src.sync.registry import EntityRegistry
from src.sync.store import Clock

logger = logging.getLogger("clinisync.sync.push")


@dataclass
class TableOutcome:
    """Counts for one fully applied table.

    Attributes:
        upserted:  Records inserted or changed.
        deleted:   Records soft-deleted.
        unchanged: Writes that were no-ops (replays, stale or deleted targets).
    """

    upserted: int = 0
    deleted: int = 0
    unchanged: int = 0


@dataclass
class PushResult:
    """Outcome of one push.

    Attributes:
        timestamp: Server time when the push was received.
        applied:   Table → TableOutcome for tables applied in full.
        rejected:  Table → reason, for tables refused before any write.
        failed:    Table → reason, for tables stopped by an error mid-way.
    """

    timestamp: datetime
    applied: dict[str, TableOutcome] = field(default_factory=dict)
    rejected: dict[str, str] = field(default_factory=dict)
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not (self.rejected or self.failed)

    def to_response(self) -> PushResponse:
        return PushResponse(
            ok=self.ok,
            timestamp=self.timestamp.isoformat(),
            rejected=self.rejected,
            failed=self.failed,
        )


class DeltaPersister:
    """Apply push batches through the registered adapters.

    Usage::

        persister = DeltaPersister(registry, clock=store.clock)
        result = await persister.persist({"patients": {"created": [...], "deleted": ["p9"]}})
    """

    def __init__(
        self,
        registry: EntityRegistry,
        clock: Clock,
        max_concurrency: int = 1,
    ) -> None:
        self._registry = registry
        self._clock = clock
        self._max_concurrency = max(1, max_concurrency)

    async def persist(self, changes: Mapping[str, Any]) -> PushResult:
        """Apply every table in ``changes``; never raises for per-table problems."""
        result = PushResult(timestamp=self._clock())
        semaphore = asyncio.Semaphore(self._max_concurrency)

        await asyncio.gather(
            *(
                self._persist_table(table, raw, result, semaphore)
                for table, raw in changes.items()
            )
        )

        logger.info(
            "Push → %d applied, %d rejected, %d failed",
            len(result.applied),
            len(result.rejected),
            len(result.failed),
        )
        return result

    async def _persist_table(
        self,
        table: str,
        raw: Any,
        result: PushResult,
        semaphore: asyncio.Semaphore,
    ) -> None:
        try:
            adapter = self._registry.adapter_for(table)
        except (UnknownTableError, TableNotWritableError) as exc:
            logger.warning("Rejected push table %s: %s", table, exc)
            result.rejected[table] = str(exc)
            return

        try:
            batch = raw if isinstance(raw, DeltaBatch) else DeltaBatch.model_validate(raw or {})
        except ValidationError as exc:
            logger.warning("Rejected push table %s: malformed batch", table)
            result.rejected[table] = f"Malformed batch for table '{table}': {exc.error_count()} error(s)"
            return

        async with semaphore:
            try:
                result.applied[table] = await self._apply(table, adapter, batch)
            except InvalidRecordError as exc:
                logger.warning("Push table %s stopped: %s", table, exc)
                result.failed[table] = str(exc)
            except ApplyError as exc:
                logger.error("Push table %s stopped: %s", table, exc, exc_info=exc.cause)
                result.failed[table] = str(exc)

    async def _apply(self, table: str, adapter: SyncAdapter, batch: DeltaBatch) -> TableOutcome:
        outcome = TableOutcome()
        created, updated, deleted = batch.counts()
        logger.debug(
            "Applying %s: %d created, %d updated, %d deleted", table, created, updated, deleted
        )

        # Created and updated share one path: upsert by id is safe either way
        for record in batch.created + batch.updated:
            try:
                written = await adapter.upsert_from_delta(record)
            except InvalidRecordError:
                raise
            except Exception as exc:
                raise ApplyError(table, str(record.get("id")), exc) from exc
            if written:
                outcome.upserted += 1
            else:
                outcome.unchanged += 1

        for record_id in batch.deleted:
            try:
                written = await adapter.delete_from_delta(record_id)
            except InvalidRecordError:
                raise
            except Exception as exc:
                raise ApplyError(table, record_id, exc) from exc
            if written:
                outcome.deleted += 1
            else:
                outcome.unchanged += 1

        return outcome
