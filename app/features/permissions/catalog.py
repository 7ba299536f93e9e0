"""
The closed set of valid (module, action) pairs.
"""
from typing import Iterable, Iterator

from app.features.permissions.keys import PermissionKey
from app.features.permissions.stores import PermissionSource
from app.utils import get_logger


log = get_logger(__name__)


class PermissionCatalog:
    """
    Immutable view of the permissions table.

    Loaded once at startup; adding a permission is a deployment step
    (scripts/seed_permissions.py) followed by a restart.
    """

    def __init__(self, keys: Iterable[PermissionKey]):
        self._keys = frozenset(keys)

    @classmethod
    async def load(cls, source: PermissionSource) -> "PermissionCatalog":
        catalog = cls(await source.list_permissions())
        log.info("Loaded permission catalog with %d permissions across %d modules", len(catalog), len(catalog.modules()))
        return catalog

    def keys(self) -> list[PermissionKey]:
        return sorted(self._keys)

    def exists(self, module: str, action: str) -> bool:
        try:
            return PermissionKey(module, action) in self._keys
        except ValueError:
            return False

    def modules(self) -> list[str]:
        return sorted({key.module for key in self._keys})

    def __contains__(self, key: object) -> bool:
        return key in self._keys

    def __iter__(self) -> Iterator[PermissionKey]:
        return iter(self.keys())

    def __len__(self) -> int:
        return len(self._keys)
