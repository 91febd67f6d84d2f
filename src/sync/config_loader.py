"""Load and validate the sync entity table.

The table lives in ``sync_entities.yaml`` alongside this module.  It is read
once at startup into an immutable ``EntityConfig`` that is handed to the
registry, puller and persister.  There is no hot-reload: changing which
tables sync means restarting the process.

Usage::

    from src.sync.config_loader import load_entity_config

    config = load_entity_config()
    for entity in config.push_to_mobile:
        print(entity.server_table, "→", entity.mobile_table)
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from src.sync.entities import SHAPES, AuditShape, EntityDescriptor

logger = logging.getLogger("clinisync.sync.config")

# Path to the YAML file sitting next to this module
_CONFIG_PATH = Path(__file__).parent / "sync_entities.yaml"

# Table names are interpolated into SQL, so keep them to plain identifiers
_IDENTIFIER = re.compile(r"^[a-z_][a-z0-9_]*$")


@dataclass(frozen=True)
class EntityConfig:
    """Complete, validated entity table.

    Attributes:
        version:   Config schema version string.
        entities:  All descriptors, in file order.
    """

    version: str
    entities: tuple[EntityDescriptor, ...]

    @property
    def push_to_mobile(self) -> tuple[EntityDescriptor, ...]:
        return tuple(e for e in self.entities if e.push_to_mobile)

    @property
    def pull_from_mobile(self) -> tuple[EntityDescriptor, ...]:
        return tuple(e for e in self.entities if e.pull_from_mobile)


class ConfigValidationError(ValueError):
    """Raised when sync_entities.yaml fails validation."""


def _load_yaml(path: Path) -> dict:
    """Read and parse a YAML file.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigValidationError: If the YAML is malformed.
    """
    if not path.exists():
        raise FileNotFoundError(f"Sync entity config not found: {path}")

    with path.open("r", encoding="utf-8") as fh:
        try:
            return yaml.safe_load(fh) or {}
        except yaml.YAMLError as exc:
            raise ConfigValidationError(f"YAML parse error in {path}: {exc}") from exc


def _validate_and_build(raw: dict) -> EntityConfig:
    """Validate the raw YAML dict and construct an EntityConfig.

    Every problem is collected before raising so that one run of the loader
    reports the whole list.

    Raises:
        ConfigValidationError: If any entry is missing fields or inconsistent.
    """
    errors: list[str] = []
    version = str(raw.get("version", "1.0"))

    entries = raw.get("entities")
    if not entries or not isinstance(entries, list):
        errors.append("'entities' must be a non-empty list")
        entries = []

    entities: list[EntityDescriptor] = []
    server_names: set[str] = set()
    mobile_names: set[str] = set()

    for i, entry in enumerate(entries):
        where = f"entities[{i}]"
        if not isinstance(entry, dict):
            errors.append(f"{where} must be a mapping")
            continue

        server_table = entry.get("server_table")
        if not isinstance(server_table, str) or not _IDENTIFIER.match(server_table):
            errors.append(f"{where}.server_table must be a lowercase identifier, got {server_table!r}")
            continue
        where = f"entities[{server_table}]"

        mobile_table = entry.get("mobile_table", server_table)
        if not isinstance(mobile_table, str) or not _IDENTIFIER.match(mobile_table):
            errors.append(f"{where}.mobile_table must be a lowercase identifier, got {mobile_table!r}")
            continue

        try:
            shape = AuditShape(entry.get("shape", AuditShape.STANDARD.value))
        except ValueError:
            errors.append(
                f"{where}.shape must be one of {[s.value for s in AuditShape]}, "
                f"got {entry.get('shape')!r}"
            )
            continue

        flags: dict[str, bool] = {}
        for flag, default in (
            ("push_to_mobile", True),
            ("pull_from_mobile", False),
            ("always_push", False),
        ):
            value = entry.get(flag, default)
            if not isinstance(value, bool):
                errors.append(f"{where}.{flag} must be a boolean, got {value!r}")
                value = default
            flags[flag] = value

        ts_raw: Any = entry.get("timestamp_columns", ["created_at", "updated_at"])
        if not isinstance(ts_raw, list) or not all(
            isinstance(c, str) and _IDENTIFIER.match(c) for c in ts_raw
        ):
            errors.append(f"{where}.timestamp_columns must be a list of identifiers")
            ts_raw = ["created_at", "updated_at"]

        if flags["pull_from_mobile"] and shape is not AuditShape.STANDARD:
            errors.append(f"{where}: {shape.value} entities cannot be pulled from mobile")
        if flags["pull_from_mobile"] and flags["always_push"]:
            errors.append(f"{where}: always_push entities are one-way and cannot be pulled from mobile")

        if server_table in server_names:
            errors.append(f"{where}: duplicate server_table")
        if mobile_table in mobile_names:
            errors.append(f"{where}: duplicate mobile_table '{mobile_table}'")
        server_names.add(server_table)
        mobile_names.add(mobile_table)

        entities.append(
            SHAPES[shape](
                server_table=server_table,
                mobile_table=mobile_table,
                timestamp_columns=tuple(ts_raw),
                **flags,
            )
        )

    if errors:
        raise ConfigValidationError(
            f"sync_entities.yaml has {len(errors)} validation error(s):\n"
            + "\n".join(f"  • {e}" for e in errors)
        )

    return EntityConfig(version=version, entities=tuple(entities))


def load_entity_config(path: Path | str | None = None) -> EntityConfig:
    """Load and validate the entity table from disk.

    Args:
        path: Override path to YAML. Uses the bundled sync_entities.yaml by default.

    Returns:
        Validated EntityConfig instance.
    """
    target = Path(path) if path else _CONFIG_PATH
    raw = _load_yaml(target)
    config = _validate_and_build(raw)
    logger.info(
        "Loaded sync entity config v%s from %s (%d entities)",
        config.version,
        target,
        len(config.entities),
    )
    return config
