"""
Legacy permission names and the canonical keys they stand for.

The mapping is configuration data (data/aliases.json) rather than code so it
can be audited and versioned on its own:

    {"version": 1, "aliases": {"fuel:create": ["fuel:record"]}}

Reads of a legacy key succeed when the role grants any of its canonical keys.
Writes of a legacy key are translated to its first canonical key, so the
stores only ever hold canonical keys.
"""
from pathlib import Path
from typing import Mapping, Iterable
from pydantic import BaseModel, Field, field_validator

from app.features.permissions.keys import PermissionKey
from app.utils import get_logger


log = get_logger(__name__)


class AliasConfig(BaseModel):
    """On-disk shape of the alias file."""
    version: int = Field(..., ge=1)
    aliases: dict[str, list[str]] = Field(default_factory=dict)

    @field_validator("aliases")
    @classmethod
    def keys_well_formed(cls, v: dict[str, list[str]]) -> dict[str, list[str]]:
        for legacy, targets in v.items():
            PermissionKey.parse(legacy)
            if not targets:
                raise ValueError(f"Alias {legacy!r} must map to at least one permission")
            for target in targets:
                PermissionKey.parse(target)
                if target == legacy:
                    raise ValueError(f"Alias {legacy!r} maps to itself")
        return v


class AliasTable:
    def __init__(self, mapping: Mapping[PermissionKey, Iterable[PermissionKey]] | None = None, version: int = 1):
        self.version = version
        self._mapping: dict[PermissionKey, tuple[PermissionKey, ...]] = {
            legacy: tuple(targets) for legacy, targets in (mapping or {}).items()
        }

    @classmethod
    def from_config(cls, config: AliasConfig) -> "AliasTable":
        mapping = {
            PermissionKey.parse(legacy): [PermissionKey.parse(t) for t in targets]
            for legacy, targets in config.aliases.items()
        }
        return cls(mapping, version=config.version)

    @classmethod
    def from_file(cls, path: Path) -> "AliasTable":
        config = AliasConfig.model_validate_json(Path(path).read_text(encoding="utf-8"))
        table = cls.from_config(config)
        log.info(f"Loaded {len(table)} permission aliases (version {table.version}) from {path}")
        return table

    def resolve_aliases(self, key: PermissionKey) -> tuple[PermissionKey, ...]:
        """Canonical keys a legacy key reads through to; empty for canonical or unmapped keys."""
        return self._mapping.get(key, ())

    def canonicalize(self, key: PermissionKey) -> PermissionKey:
        """Key to store when a caller writes `key`."""
        targets = self._mapping.get(key)
        if targets:
            log.debug(f"Translating legacy permission {key} to {targets[0]}")
            return targets[0]
        return key

    def legacy_keys(self) -> list[PermissionKey]:
        return sorted(self._mapping)

    def check_catalog(self, catalog) -> list[PermissionKey]:
        """Log and return alias targets that are missing from the catalog."""
        missing = sorted({t for targets in self._mapping.values() for t in targets if t not in catalog})
        for key in missing:
            log.warning(f"Permission alias target {key} is not in the permission catalog")
        return missing

    def __len__(self) -> int:
        return len(self._mapping)
