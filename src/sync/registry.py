"""Entity registry — resolves wire-level table names to descriptors and adapters.

Server and mobile table names may differ, so the registry keeps one lookup
per direction: by server name (pulling) and by mobile name (pushing).  It
is built once from the startup ``EntityConfig`` and never mutated.
"""

from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Callable, Iterable, Mapping

from src.sync.adapters import SyncAdapter, build_adapter
from src.sync.entities import EntityDescriptor
from src.sync.errors import TableNotWritableError, UnknownTableError
from src.sync.store import SyncStore

logger = logging.getLogger("clinisync.sync.registry")

AdapterFactory = Callable[[EntityDescriptor], SyncAdapter]


class EntityRegistry:
    """Read-only lookup table of syncable entities.

    Usage::

        registry = EntityRegistry(config.entities, lambda e: build_adapter(e, store))
        adapter = registry.adapter_for("patients")
        for entity in registry.push_to_mobile():
            ...
    """

    def __init__(
        self,
        entities: Iterable[EntityDescriptor],
        adapter_factory: AdapterFactory,
    ) -> None:
        self._entities = tuple(entities)
        self._by_server: Mapping[str, EntityDescriptor] = MappingProxyType(
            {e.server_table: e for e in self._entities}
        )
        self._by_mobile: Mapping[str, EntityDescriptor] = MappingProxyType(
            {e.mobile_table: e for e in self._entities}
        )
        self._adapters: Mapping[str, SyncAdapter] = MappingProxyType(
            {e.mobile_table: adapter_factory(e) for e in self._entities if e.pull_from_mobile}
        )
        logger.debug(
            "Entity registry built: %d entities, %d writable",
            len(self._entities),
            len(self._adapters),
        )

    @property
    def entities(self) -> tuple[EntityDescriptor, ...]:
        return self._entities

    def by_server_table(self, name: str) -> EntityDescriptor:
        try:
            return self._by_server[name]
        except KeyError:
            raise UnknownTableError(name) from None

    def by_mobile_table(self, name: str) -> EntityDescriptor:
        try:
            return self._by_mobile[name]
        except KeyError:
            raise UnknownTableError(name) from None

    def push_to_mobile(self) -> tuple[EntityDescriptor, ...]:
        """Entities included in pull responses, in config order."""
        return tuple(e for e in self._entities if e.push_to_mobile)

    def adapter_for(self, mobile_table: str) -> SyncAdapter:
        """Resolve a push table name to its adapter.

        Raises:
            UnknownTableError:     Not a registered mobile table.
            TableNotWritableError: Registered, but not accepted from clients.
        """
        entity = self.by_mobile_table(mobile_table)
        adapter = self._adapters.get(entity.mobile_table)
        if adapter is None:
            raise TableNotWritableError(mobile_table)
        return adapter

    @property
    def writable(self) -> list[str]:
        """Mobile table names that accept client changes."""
        return list(self._adapters)


def build_registry(entities: Iterable[EntityDescriptor], store: SyncStore) -> EntityRegistry:
    """Build the registry with the default adapter for each entity."""
    return EntityRegistry(entities, lambda entity: build_adapter(entity, store))
