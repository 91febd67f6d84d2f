"""Offline-first delta sync engine for Clinisync.

Modules:
    entities       — Entity descriptors and their per-shape delta rules
    config_loader  — Load/validate sync_entities.yaml into an immutable EntityConfig
    store          — Storage seam (SyncStore / StoreTransaction)
    postgres_store — asyncpg-backed store
    memory_store   — In-process store for local development and tests
    sql            — Idempotent upsert / soft-delete / delta SQL builders
    adapters       — Per-entity SyncAdapter implementations
    registry       — Table name → descriptor / adapter lookups
    pull           — Delta puller (server → client)
    push           — Delta persister (client → server)
    engine         — Wires the pieces together at startup
    errors         — Sync exception hierarchy
"""
