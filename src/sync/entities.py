"""Entity descriptors: which tables sync, in which direction, and how their deltas are computed.

Two audit shapes exist and each carries its own delta rule:

    StandardEntity    — ``server_created_at`` / ``last_modified`` / ``is_deleted`` /
                        ``deleted_at``.  Soft-deleted rows are reported by id.
    CreateOnlyEntity  — ``created_at`` / ``updated_at`` only.  Rows are never
                        deleted, so the deleted list is always empty.

For a cursor ``T`` every rule keeps created and updated mutually exclusive:
created needs the creation column ``> T``, updated needs it ``<= T``.

Each rule is expressed twice: as a SQL ``WHERE`` fragment (``$1`` is the
cursor) for the Postgres store, and as a row predicate for the in-process
store.  The two must stay in step; the store tests run both through the
same scenarios.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Mapping

Row = Mapping[str, Any]


class AuditShape(str, Enum):
    STANDARD = "standard"
    CREATE_ONLY = "create_only"


@dataclass(frozen=True)
class EntityDescriptor(ABC):
    """Static declaration of one syncable entity.

    Attributes:
        server_table:      Table name in the server database.
        mobile_table:      Table name used on the wire / in the mobile database.
        push_to_mobile:    Included in pull responses.
        pull_from_mobile:  Accepts client changes on push.
        always_push:       Every live row is sent as ``created`` on every pull,
                           regardless of the cursor.
        timestamp_columns: Client-authored timestamp columns that arrive as
                           epoch ms or ISO strings and are stored as datetimes.
    """

    server_table: str
    mobile_table: str
    push_to_mobile: bool = True
    pull_from_mobile: bool = False
    always_push: bool = False
    timestamp_columns: tuple[str, ...] = ("created_at", "updated_at")

    SHAPE: ClassVar[AuditShape]
    SERVER_OWNED_COLUMNS: ClassVar[frozenset[str]] = frozenset()

    @property
    def conflict_column(self) -> str | None:
        """Client timestamp used for last-write-wins, if the entity has one."""
        return "updated_at" if "updated_at" in self.timestamp_columns else None

    # --- SQL ---

    @abstractmethod
    def created_where(self) -> str: ...

    @abstractmethod
    def updated_where(self) -> str | None:
        """``None`` means the updated list is always empty."""

    @abstractmethod
    def deleted_where(self) -> str | None:
        """``None`` means the deleted list is always empty."""

    # --- Row predicates ---

    @abstractmethod
    def is_live(self, row: Row) -> bool: ...

    @abstractmethod
    def is_created(self, row: Row, since: datetime) -> bool: ...

    @abstractmethod
    def is_updated(self, row: Row, since: datetime) -> bool: ...

    @abstractmethod
    def is_deleted(self, row: Row, since: datetime) -> bool: ...


def _after(value: datetime | None, since: datetime) -> bool:
    return value is not None and value > since


@dataclass(frozen=True)
class StandardEntity(EntityDescriptor):
    SHAPE: ClassVar[AuditShape] = AuditShape.STANDARD
    SERVER_OWNED_COLUMNS: ClassVar[frozenset[str]] = frozenset(
        {"server_created_at", "last_modified", "is_deleted", "deleted_at"}
    )

    _LIVE: ClassVar[str] = "is_deleted = false AND deleted_at IS NULL"

    def created_where(self) -> str:
        if self.always_push:
            return self._LIVE
        return f"server_created_at > $1 AND {self._LIVE}"

    def updated_where(self) -> str | None:
        if self.always_push:
            return None
        return f"last_modified > $1 AND server_created_at <= $1 AND {self._LIVE}"

    def deleted_where(self) -> str | None:
        return "is_deleted = true AND deleted_at > $1"

    def is_live(self, row: Row) -> bool:
        return not row.get("is_deleted") and row.get("deleted_at") is None

    def is_created(self, row: Row, since: datetime) -> bool:
        if not self.is_live(row):
            return False
        return self.always_push or _after(row.get("server_created_at"), since)

    def is_updated(self, row: Row, since: datetime) -> bool:
        if self.always_push or not self.is_live(row):
            return False
        created = row.get("server_created_at")
        return (
            created is not None
            and created <= since
            and _after(row.get("last_modified"), since)
        )

    def is_deleted(self, row: Row, since: datetime) -> bool:
        return bool(row.get("is_deleted")) and _after(row.get("deleted_at"), since)


@dataclass(frozen=True)
class CreateOnlyEntity(EntityDescriptor):
    SHAPE: ClassVar[AuditShape] = AuditShape.CREATE_ONLY

    def created_where(self) -> str:
        if self.always_push:
            return "true"
        return "created_at > $1"

    def updated_where(self) -> str | None:
        if self.always_push:
            return None
        return "created_at <= $1 AND updated_at > $1"

    def deleted_where(self) -> str | None:
        return None

    def is_live(self, row: Row) -> bool:
        return True

    def is_created(self, row: Row, since: datetime) -> bool:
        return self.always_push or _after(row.get("created_at"), since)

    def is_updated(self, row: Row, since: datetime) -> bool:
        if self.always_push:
            return False
        created = row.get("created_at")
        return (
            created is not None
            and created <= since
            and _after(row.get("updated_at"), since)
        )

    def is_deleted(self, row: Row, since: datetime) -> bool:
        return False


SHAPES: dict[AuditShape, type[EntityDescriptor]] = {
    AuditShape.STANDARD: StandardEntity,
    AuditShape.CREATE_ONLY: CreateOnlyEntity,
}
