"""Startup wiring: config + store → registry, puller, persister."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from src.config import Settings
from src.sync.config_loader import EntityConfig, load_entity_config
from src.sync.pull import DeltaPuller
from src.sync.push import DeltaPersister
from src.sync.registry import EntityRegistry, build_registry
from src.sync.store import SyncStore

logger = logging.getLogger("clinisync.sync.engine")


@dataclass(frozen=True)
class SyncEngine:
    """Everything a request handler needs, built once per process."""

    config: EntityConfig
    store: SyncStore
    registry: EntityRegistry
    puller: DeltaPuller
    persister: DeltaPersister


def build_engine(
    settings: Settings,
    store: SyncStore,
    config: EntityConfig | None = None,
) -> SyncEngine:
    """Assemble a SyncEngine around ``store``.

    Args:
        settings: Application settings (concurrency limits, config path).
        store:    The storage backend.
        config:   Pre-loaded entity config; loaded from disk when omitted.
    """
    config = config or load_entity_config(settings.entity_config_path)
    registry = build_registry(config.entities, store)
    engine = SyncEngine(
        config=config,
        store=store,
        registry=registry,
        puller=DeltaPuller(registry, store, max_concurrency=settings.pull_max_concurrency),
        persister=DeltaPersister(
            registry, clock=store.clock, max_concurrency=settings.push_max_concurrency
        ),
    )
    logger.info(
        "Sync engine ready: %d tables to mobile, %d tables from mobile",
        len(registry.push_to_mobile()),
        len(registry.writable),
    )
    return engine
