"""Delta puller — builds the change-set an offline client needs to catch up.

Flow for one pull:
1. Capture the request time; it becomes the client's next cursor
2. Fan out one delta query per push-to-mobile entity (bounded concurrency)
3. Fan in: assemble ``mobile_table → DeltaBatch`` only once every query is done

Any single query failure aborts the whole pull.  Sending a partial response
together with an advanced cursor would make the skipped entity's changes
unreachable for that client forever.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime

from src.models.base import from_epoch_ms, to_epoch_ms
from src.models.sync import DeltaBatch, PullResponse
from src.sync.entities import EntityDescriptor
from src.sync.errors import PullQueryError
from src.sync.registry import EntityRegistry
from src.sync.store import SyncStore

logger = logging.getLogger("clinisync.sync.pull")


@dataclass
class PullResult:
    """Outcome of one pull.

    Attributes:
        changes:    Mobile table name → DeltaBatch, for every push-to-mobile entity.
        timestamp:  New cursor (epoch ms): the request time, floored to the millisecond.
    """

    changes: dict[str, DeltaBatch] = field(default_factory=dict)
    timestamp: int = 0

    def to_response(self) -> PullResponse:
        return PullResponse(changes=self.changes, timestamp=self.timestamp)


class DeltaPuller:
    """Compute per-table deltas since a client cursor.

    Usage::

        puller = DeltaPuller(registry, store, max_concurrency=4)
        result = await puller.pull(last_pulled_at=1717000000000)
    """

    def __init__(
        self,
        registry: EntityRegistry,
        store: SyncStore,
        max_concurrency: int = 4,
    ) -> None:
        self._registry = registry
        self._store = store
        self._max_concurrency = max(1, max_concurrency)

    async def pull(self, last_pulled_at: int | None) -> PullResult:
        """Return every change after ``last_pulled_at`` (epoch ms; ``None`` means first sync).

        Raises:
            PullQueryError: If the delta query for any entity fails.
        """
        # Taken before any query runs so rows written mid-pull land in the next window
        started = self._store.clock()
        cursor = last_pulled_at or 0
        since = from_epoch_ms(cursor)
        entities = self._registry.push_to_mobile()

        semaphore = asyncio.Semaphore(self._max_concurrency)
        tasks = [
            asyncio.ensure_future(self._fetch(entity, since, semaphore))
            for entity in entities
        ]
        try:
            batches = await asyncio.gather(*tasks)
        except PullQueryError as exc:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.error("Pull aborted at cursor %d: %s", cursor, exc)
            raise

        result = PullResult(
            changes={e.mobile_table: b for e, b in zip(entities, batches)},
            timestamp=to_epoch_ms(started),
        )
        created, updated, deleted = (
            sum(b.counts()[i] for b in result.changes.values()) for i in range(3)
        )
        logger.info(
            "Pull since %d → %d tables, %d created, %d updated, %d deleted, cursor=%d",
            cursor,
            len(result.changes),
            created,
            updated,
            deleted,
            result.timestamp,
        )
        return result

    async def _fetch(
        self,
        entity: EntityDescriptor,
        since: datetime,
        semaphore: asyncio.Semaphore,
    ) -> DeltaBatch:
        async with semaphore:
            try:
                return await self._store.fetch_delta(entity, since)
            except Exception as exc:
                raise PullQueryError(entity.mobile_table, exc) from exc
