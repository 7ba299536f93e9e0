"""
Storage contracts consumed by the permission engine.

Implementations raise StoreUnavailable when the backing store fails and
UnknownPermissionKey when asked to write a key missing from the catalog.
They never touch the permission cache; callers invalidate after writing.
"""
from typing import Mapping, Protocol, runtime_checkable

from app.features.permissions.keys import PermissionKey


@runtime_checkable
class PermissionSource(Protocol):
    async def list_permissions(self) -> list[PermissionKey]:
        ...


@runtime_checkable
class RoleGrantStore(Protocol):
    async def grants_for(self, role: str) -> frozenset[PermissionKey]:
        """Keys explicitly granted to the role (rows with granted=true)."""
        ...

    async def set_grant(self, role: str, key: PermissionKey, granted: bool) -> None:
        ...


@runtime_checkable
class UserOverrideStore(Protocol):
    async def overrides_for(self, user_id: str) -> Mapping[PermissionKey, bool]:
        ...

    async def set_override(self, user_id: str, key: PermissionKey, granted: bool) -> None:
        ...

    async def clear_override(self, user_id: str, key: PermissionKey) -> None:
        """Remove the override row; a missing row is not an error."""
        ...
