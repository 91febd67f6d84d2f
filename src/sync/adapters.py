"""Sync adapters: apply one pushed record to one entity's storage.

Every entity that accepts client changes is served by a ``SyncAdapter``.
``TableSyncAdapter`` covers the common case; subclasses override
``prepare_record`` when an entity needs extra normalisation.

Available adapters:
    TableSyncAdapter    — generic upsert / soft delete for any standard table
    PatientSyncAdapter  — also normalises ``date_of_birth`` to a date
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import date, datetime, timezone
from typing import Any

from src.models.base import from_epoch_ms
from src.sync.entities import EntityDescriptor
from src.sync.errors import InvalidRecordError
from src.sync.store import SyncStore

logger = logging.getLogger("clinisync.sync.adapters")

# Client-side bookkeeping fields that never reach the database
CLIENT_ONLY_FIELDS: frozenset[str] = frozenset({"_status", "_changed"})


class SyncAdapter(ABC):
    """Per-entity write interface used by the push handler."""

    entity: EntityDescriptor

    @abstractmethod
    async def upsert_from_delta(self, record: dict[str, Any]) -> bool:
        """Insert or overwrite one record, keyed by ``id``.  Returns True if a row changed."""

    @abstractmethod
    async def delete_from_delta(self, record_id: str) -> bool:
        """Soft-delete one record.  Returns True if a row changed."""


def parse_timestamp(value: Any) -> datetime | None:
    """Coerce an epoch-ms number or ISO-8601 string into an aware UTC datetime.

    Naive ISO strings are taken to be UTC.

    Raises:
        ValueError: If the value cannot be interpreted as a timestamp.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, bool):
        raise ValueError(f"Not a timestamp: {value!r}")
    elif isinstance(value, (int, float)):
        return from_epoch_ms(value)
    elif isinstance(value, str):
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    else:
        raise ValueError(f"Not a timestamp: {value!r}")
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


class TableSyncAdapter(SyncAdapter):
    """Generic adapter: one record, one transaction, one table."""

    def __init__(self, entity: EntityDescriptor, store: SyncStore) -> None:
        self.entity = entity
        self._store = store

    def prepare_record(self, record: dict[str, Any]) -> dict[str, Any]:
        """Validate a pushed record and turn it into a storable row.

        Drops server-owned audit columns and client bookkeeping fields, and
        converts timestamp columns to datetimes.

        Raises:
            InvalidRecordError: If ``id`` is missing or a timestamp is unreadable.
        """
        table = self.entity.mobile_table
        record_id = record.get("id")
        if not isinstance(record_id, str) or not record_id.strip():
            raise InvalidRecordError(table, "record has no string 'id'")

        skip = self.entity.SERVER_OWNED_COLUMNS | CLIENT_ONLY_FIELDS
        row = {k: v for k, v in record.items() if k not in skip}

        for column in self.entity.timestamp_columns:
            if column in row:
                try:
                    row[column] = parse_timestamp(row[column])
                except ValueError as exc:
                    raise InvalidRecordError(
                        table, f"{record_id}: bad {column} ({exc})"
                    ) from exc
        return row

    async def upsert_from_delta(self, record: dict[str, Any]) -> bool:
        row = self.prepare_record(record)
        async with self._store.transaction() as txn:
            written = await txn.upsert(self.entity, row)
        if not written:
            logger.debug("Upsert %s/%s was a no-op", self.entity.server_table, row["id"])
        return written

    async def delete_from_delta(self, record_id: str) -> bool:
        if not isinstance(record_id, str) or not record_id.strip():
            raise InvalidRecordError(self.entity.mobile_table, "deleted id must be a string")
        async with self._store.transaction() as txn:
            written = await txn.soft_delete(self.entity, record_id)
        if not written:
            logger.debug(
                "Delete %s/%s was a no-op (unknown or already deleted)",
                self.entity.server_table,
                record_id,
            )
        return written


class PatientSyncAdapter(TableSyncAdapter):
    """Patients arrive with ``date_of_birth`` as epoch ms, ISO datetime or ISO date."""

    def prepare_record(self, record: dict[str, Any]) -> dict[str, Any]:
        row = super().prepare_record(record)
        if "date_of_birth" not in row:
            return row
        dob = row["date_of_birth"]
        try:
            if dob in (None, ""):
                row["date_of_birth"] = None
            elif isinstance(dob, (int, float)) and not isinstance(dob, bool):
                row["date_of_birth"] = from_epoch_ms(dob).date()
            elif isinstance(dob, str):
                row["date_of_birth"] = date.fromisoformat(dob[:10])
        except ValueError as exc:
            raise InvalidRecordError(
                self.entity.mobile_table, f"{row['id']}: bad date_of_birth {dob!r}"
            ) from exc
        return row


# Registry: server table → adapter class (anything not listed uses TableSyncAdapter)
ADAPTER_CLASSES: dict[str, type[TableSyncAdapter]] = {
    "patients": PatientSyncAdapter,
}


def build_adapter(entity: EntityDescriptor, store: SyncStore) -> SyncAdapter:
    """Instantiate the adapter for ``entity`` against ``store``."""
    adapter_cls = ADAPTER_CLASSES.get(entity.server_table, TableSyncAdapter)
    return adapter_cls(entity, store)
