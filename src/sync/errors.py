"""Exceptions raised by the sync engine.

Pull-side errors abort the whole pull.  Push-side errors are scoped to a
single table: the persister catches them, records them against that table,
and carries on with the rest of the batch.
"""

from __future__ import annotations


class SyncError(Exception):
    """Base class for all sync engine errors."""


class PullQueryError(SyncError):
    """A delta query failed for one entity, so no pull response may be sent."""

    def __init__(self, table: str, cause: BaseException | None = None) -> None:
        self.table = table
        self.cause = cause
        super().__init__(f"Delta query failed for table '{table}': {cause}")


class UnknownTableError(SyncError):
    """The push payload names a table that is not registered."""

    def __init__(self, table: str) -> None:
        self.table = table
        super().__init__(f"Unknown table '{table}'")


class TableNotWritableError(SyncError):
    """The table exists but does not accept changes from mobile clients."""

    def __init__(self, table: str) -> None:
        self.table = table
        super().__init__(f"Table '{table}' does not accept client changes")


class InvalidRecordError(SyncError):
    """A pushed record is malformed (e.g. missing its ``id``)."""

    def __init__(self, table: str, reason: str) -> None:
        self.table = table
        self.reason = reason
        super().__init__(f"Invalid record for table '{table}': {reason}")


class ApplyError(SyncError):
    """Storage failed while applying one record from a push."""

    def __init__(
        self, table: str, record_id: str, cause: BaseException | None = None
    ) -> None:
        self.table = table
        self.record_id = record_id
        self.cause = cause
        super().__init__(f"Failed to apply {table}/{record_id}: {cause}")
