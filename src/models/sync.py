"""Wire schemas for the pull / push sync endpoints."""

from __future__ import annotations

from typing import Any

from pydantic import Field

from src.models.base import MAX_EPOCH_MS, ClinisyncBase


class DeltaBatch(ClinisyncBase):
    """Changes for one table in one direction.

    ``created`` and ``updated`` carry full record payloads; ``deleted`` carries
    record ids only.  Missing lists default to empty.
    """

    created: list[dict[str, Any]] = Field(default_factory=list)
    updated: list[dict[str, Any]] = Field(default_factory=list)
    deleted: list[str] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.created or self.updated or self.deleted)

    def counts(self) -> tuple[int, int, int]:
        return len(self.created), len(self.updated), len(self.deleted)


class PullRequest(ClinisyncBase):
    """Pull request body.  ``schemaVersion`` and ``migration`` are accepted but not interpreted."""

    last_pulled_at: int | None = Field(default=None, ge=0, le=MAX_EPOCH_MS)
    schema_version: int | None = Field(default=None, alias="schemaVersion")
    migration: Any = None


class PullResponse(ClinisyncBase):
    changes: dict[str, DeltaBatch]
    timestamp: int  # epoch ms, becomes the client's next last_pulled_at


class PushResponse(ClinisyncBase):
    ok: bool
    timestamp: str  # ISO-8601
    rejected: dict[str, str] = Field(default_factory=dict)
    failed: dict[str, str] = Field(default_factory=dict)
