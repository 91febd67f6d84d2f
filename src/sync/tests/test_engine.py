"""Tests for engine wiring."""

from __future__ import annotations

from pathlib import Path

import pytest

from src.config import Settings
from src.sync.config_loader import ConfigValidationError
from src.sync.engine import build_engine
from src.sync.memory_store import InMemorySyncStore
from src.sync.tests.conftest import FakeClock


def test_engine_uses_bundled_config(store: InMemorySyncStore) -> None:
    engine = build_engine(Settings(storage_backend="memory"), store)
    assert engine.store is store
    assert len(engine.registry.push_to_mobile()) == 13
    assert engine.config.version == "1.0"


def test_engine_reads_config_path(tmp_path: Path, store: InMemorySyncStore) -> None:
    path = tmp_path / "entities.yaml"
    path.write_text("entities:\n  - server_table: visits\n    pull_from_mobile: true\n")

    engine = build_engine(Settings(entity_config_path=str(path)), store)

    assert [e.server_table for e in engine.config.entities] == ["visits"]
    assert engine.registry.writable == ["visits"]


def test_invalid_config_fails_startup(tmp_path: Path, store: InMemorySyncStore) -> None:
    path = tmp_path / "entities.yaml"
    path.write_text("entities:\n  - server_table: Visits\n")
    with pytest.raises(ConfigValidationError):
        build_engine(Settings(entity_config_path=str(path)), store)


@pytest.mark.asyncio
async def test_persister_stamps_with_store_clock(clock: FakeClock, store: InMemorySyncStore) -> None:
    engine = build_engine(Settings(), store)
    clock.set(42_000)
    result = await engine.persister.persist({})
    assert result.timestamp == clock()
