"""Tests for EntityRegistry lookups."""

from __future__ import annotations

import pytest

from src.sync.adapters import PatientSyncAdapter
from src.sync.config_loader import EntityConfig
from src.sync.errors import TableNotWritableError, UnknownTableError
from src.sync.memory_store import InMemorySyncStore
from src.sync.registry import EntityRegistry, build_registry
from src.sync.tests.conftest import PATIENTS, REGISTRATION_FORMS


class TestLookups:
    def test_by_server_and_mobile_name(self, registry: EntityRegistry) -> None:
        assert registry.by_server_table("patient_registration_forms") == REGISTRATION_FORMS
        assert registry.by_mobile_table("registration_forms") == REGISTRATION_FORMS

    def test_unknown_name(self, registry: EntityRegistry) -> None:
        with pytest.raises(UnknownTableError, match="unicorns"):
            registry.by_mobile_table("unicorns")
        with pytest.raises(UnknownTableError):
            registry.by_server_table("registration_forms")

    def test_push_to_mobile_keeps_config_order(self, registry: EntityRegistry, entities: tuple) -> None:
        assert registry.push_to_mobile() == entities

    def test_mappings_are_read_only(self, registry: EntityRegistry) -> None:
        with pytest.raises(TypeError):
            registry._by_mobile["x"] = PATIENTS  # type: ignore[index]


class TestAdapters:
    def test_adapter_for_writable_table(self, registry: EntityRegistry) -> None:
        assert isinstance(registry.adapter_for("patients"), PatientSyncAdapter)

    def test_adapter_for_read_only_table(self, registry: EntityRegistry) -> None:
        with pytest.raises(TableNotWritableError):
            registry.adapter_for("clinics")

    def test_adapter_for_unknown_table(self, registry: EntityRegistry) -> None:
        with pytest.raises(UnknownTableError):
            registry.adapter_for("unicorns")

    def test_writable(self, registry: EntityRegistry) -> None:
        assert registry.writable == ["patients", "visits"]

    def test_factory_called_once_per_writable_entity(self, entities: tuple) -> None:
        built: list[str] = []

        def factory(entity):
            built.append(entity.server_table)
            return object()

        EntityRegistry(entities, factory)
        assert built == ["patients", "visits"]

    def test_bundled_config(self, entity_config: EntityConfig, store: InMemorySyncStore) -> None:
        registry = build_registry(entity_config.entities, store)
        assert len(registry.push_to_mobile()) == 13
        assert "registration_forms" not in registry.writable
        assert "user_clinic_permissions" not in registry.writable
