"""
Permission resolution.

Precedence, highest first:
1. the superadmin role is granted everything
2. keys missing from the catalog are denied (and logged)
3. a user override decides, in either direction
4. a role grant allows
5. a role grant of any canonical key the requested legacy key aliases allows
6. everything else is denied
"""
from typing import Mapping

from app.features.permissions.aliases import AliasTable
from app.features.permissions.cache import CacheScope, PermissionCache
from app.features.permissions.catalog import PermissionCatalog
from app.features.permissions.errors import StoreUnavailable
from app.features.permissions.keys import PermissionKey, Principal
from app.features.permissions.stores import RoleGrantStore, UserOverrideStore
from app.utils import get_logger


log = get_logger(__name__)


class PermissionResolver:
    def __init__(
        self,
        catalog: PermissionCatalog,
        aliases: AliasTable,
        role_store: RoleGrantStore,
        user_store: UserOverrideStore,
        cache: PermissionCache,
        superadmin_role: str = "superadmin",
    ):
        self.catalog = catalog
        self.aliases = aliases
        self.role_store = role_store
        self.user_store = user_store
        self.cache = cache
        self.superadmin_role = superadmin_role

    def is_superadmin(self, principal: Principal) -> bool:
        return principal.role == self.superadmin_role

    async def grants_for(self, role: str, fresh: bool = False) -> frozenset[PermissionKey]:
        """
        Granted keys for a role.

        fresh=True drops the cached entry first and reloads from the store;
        use it to reconcile after a partially failed bulk update.
        """
        if fresh:
            self.cache.invalidate(CacheScope.ROLE, role)
        return await self.cache.get_or_load(CacheScope.ROLE, role, lambda: self.role_store.grants_for(role))

    async def overrides_for(self, user_id: str, fresh: bool = False) -> Mapping[PermissionKey, bool]:
        if fresh:
            self.cache.invalidate(CacheScope.USER, user_id)
        return await self.cache.get_or_load(CacheScope.USER, user_id, lambda: self.user_store.overrides_for(user_id))

    async def check(self, principal: Principal, module: str, action: str) -> bool:
        """
        Decide whether principal may perform action on module.

        Raises StoreUnavailable when a store read fails so callers can report
        a degraded system instead of a denial.
        """
        if self.is_superadmin(principal):
            return True

        if not self.catalog.exists(module, action):
            log.warning(
                f"Unknown permission {module}:{action} requested for user {principal.id} "
                f"(role {principal.role}); denying. Client and catalog may be out of sync."
            )
            return False
        key = PermissionKey(module, action)

        overrides = await self.overrides_for(principal.id)
        if key in overrides:
            log.debug(f"User {principal.id} override for {key}: {overrides[key]}")
            return overrides[key]

        base = await self.grants_for(principal.role)
        if key in base:
            return True

        for canonical in self.aliases.resolve_aliases(key):
            if canonical in base:
                log.debug(f"Role {principal.role} granted {key} through alias {canonical}")
                return True

        log.debug(f"User {principal.id} (role {principal.role}) denied {key}")
        return False

    async def resolve(self, principal: Principal, module: str, action: str) -> bool:
        """Like check(), but a store failure denies instead of raising."""
        try:
            return await self.check(principal, module, action)
        except StoreUnavailable as e:
            log.error(f"Denying {module}:{action} for user {principal.id}: {e}")
            return False

    async def list_effective(self, principal: Principal) -> list[str]:
        """
        Every key resolve() would allow for the principal, as module:action strings.

        Raises StoreUnavailable rather than returning a partial list.
        """
        if self.is_superadmin(principal):
            return [str(key) for key in self.catalog.keys()]

        base = await self.grants_for(principal.role)
        overrides = await self.overrides_for(principal.id)

        effective = {key for key in base if key in self.catalog}
        for legacy in self.aliases.legacy_keys():
            if legacy in self.catalog and any(c in base for c in self.aliases.resolve_aliases(legacy)):
                effective.add(legacy)

        for key, granted in overrides.items():
            if key not in self.catalog:
                continue
            if granted:
                effective.add(key)
            else:
                effective.discard(key)

        return [str(key) for key in sorted(effective)]
