"""Shared fixtures for sync engine tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from src.sync.config_loader import EntityConfig, load_entity_config
from src.sync.entities import CreateOnlyEntity, StandardEntity
from src.sync.memory_store import InMemorySyncStore
from src.sync.pull import DeltaPuller
from src.sync.push import DeltaPersister
from src.sync.registry import EntityRegistry, build_registry

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def ts(ms: int) -> datetime:
    """Epoch milliseconds → aware datetime (exact, no float rounding)."""
    return EPOCH + timedelta(milliseconds=ms)


class FakeClock:
    """Manually advanced clock, callable like ``utc_now``."""

    def __init__(self, start_ms: int = 1_000) -> None:
        self.now = ts(start_ms)

    def __call__(self) -> datetime:
        return self.now

    def set(self, ms: int) -> None:
        self.now = ts(ms)

    def advance(self, ms: int) -> None:
        self.now += timedelta(milliseconds=ms)


def standard_row(
    record_id: str,
    created: int,
    modified: int | None = None,
    deleted_at: int | None = None,
    **fields: Any,
) -> dict[str, Any]:
    """A row of a standard-shape table, timestamps given in epoch ms."""
    return {
        "id": record_id,
        "server_created_at": ts(created),
        "last_modified": ts(modified if modified is not None else created),
        "is_deleted": deleted_at is not None,
        "deleted_at": ts(deleted_at) if deleted_at is not None else None,
        **fields,
    }


def create_only_row(record_id: str, created: int, updated: int | None = None, **fields: Any) -> dict[str, Any]:
    return {
        "id": record_id,
        "created_at": ts(created),
        "updated_at": ts(updated if updated is not None else created),
        **fields,
    }


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------

PATIENTS = StandardEntity(server_table="patients", mobile_table="patients", pull_from_mobile=True)
VISITS = StandardEntity(server_table="visits", mobile_table="visits", pull_from_mobile=True)
CLINICS = StandardEntity(server_table="clinics", mobile_table="clinics")
REGISTRATION_FORMS = StandardEntity(
    server_table="patient_registration_forms", mobile_table="registration_forms"
)
PERMISSIONS = CreateOnlyEntity(
    server_table="user_clinic_permissions", mobile_table="user_clinic_permissions"
)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> InMemorySyncStore:
    return InMemorySyncStore(clock=clock)


@pytest.fixture
def entity_config() -> EntityConfig:
    """The bundled sync_entities.yaml."""
    return load_entity_config()


@pytest.fixture
def entities() -> tuple:
    return (PATIENTS, VISITS, CLINICS, REGISTRATION_FORMS, PERMISSIONS)


@pytest.fixture
def registry(entities: tuple, store: InMemorySyncStore) -> EntityRegistry:
    return build_registry(entities, store)


@pytest.fixture
def puller(registry: EntityRegistry, store: InMemorySyncStore) -> DeltaPuller:
    return DeltaPuller(registry, store)


@pytest.fixture
def persister(registry: EntityRegistry, clock: FakeClock) -> DeltaPersister:
    return DeltaPersister(registry, clock=clock)
