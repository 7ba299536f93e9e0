"""
Entry points of the permission engine.

Every mutation translates legacy keys to canonical ones, writes the store,
and invalidates the affected cache scope before returning, so a resolution
issued after a successful write always sees it.
"""
from pathlib import Path
from typing import Mapping
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core import config
from app.features.permissions.aliases import AliasTable
from app.features.permissions.cache import CacheScope, PermissionCache
from app.features.permissions.catalog import PermissionCatalog
from app.features.permissions.errors import UnknownPermissionKey
from app.features.permissions.guard import PermissionGuard
from app.features.permissions.keys import PermissionKey, Principal
from app.features.permissions.repository import SqlAlchemyPermissionRepository
from app.features.permissions.resolver import PermissionResolver
from app.features.permissions.stores import RoleGrantStore, UserOverrideStore
from app.features.permissions.templates import TemplateApplier, TemplateReport
from app.utils import get_logger


log = get_logger(__name__)


class PermissionService:
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
        self.resolver = PermissionResolver(catalog, aliases, role_store, user_store, cache, superadmin_role)
        self.guard = PermissionGuard(self.resolver)
        self.templates = TemplateApplier(catalog, aliases, self._write_role_grant)

    @property
    def superadmin_role(self) -> str:
        return self.resolver.superadmin_role

    def canonical_key(self, module: str, action: str) -> PermissionKey:
        """Key a write of module:action is stored under; raises UnknownPermissionKey."""
        try:
            key = PermissionKey(module, action)
        except ValueError:
            raise UnknownPermissionKey(f"{module}:{action}") from None
        key = self.aliases.canonicalize(key)
        if key not in self.catalog:
            raise UnknownPermissionKey(str(key))
        return key

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def resolve(self, principal_id: str, role: str, module: str, action: str) -> bool:
        return await self.resolver.resolve(Principal(principal_id, role), module, action)

    async def list_effective(self, principal_id: str, role: str) -> list[str]:
        return await self.resolver.list_effective(Principal(principal_id, role))

    async def grants_for(self, role: str, fresh: bool = False) -> list[str]:
        return [str(key) for key in sorted(await self.resolver.grants_for(role, fresh=fresh))]

    async def overrides_for(self, user_id: str, fresh: bool = False) -> dict[str, bool]:
        overrides: Mapping[PermissionKey, bool] = await self.resolver.overrides_for(user_id, fresh=fresh)
        return {str(key): granted for key, granted in sorted(overrides.items())}

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def _write_role_grant(self, role: str, key: PermissionKey, granted: bool) -> PermissionKey:
        if key not in self.catalog:
            raise UnknownPermissionKey(str(key))
        try:
            await self.role_store.set_grant(role, key, granted)
        finally:
            self.cache.invalidate(CacheScope.ROLE, role)
        return key

    async def set_role_grant(self, role: str, module: str, action: str, granted: bool) -> PermissionKey:
        key = self.canonical_key(module, action)
        await self._write_role_grant(role, key, granted)
        log.info(f"Role '{role}' {'granted' if granted else 'revoked'} {key}")
        return key

    async def set_user_override(self, user_id: str, module: str, action: str, granted: bool) -> PermissionKey:
        key = self.canonical_key(module, action)
        try:
            await self.user_store.set_override(user_id, key, granted)
        finally:
            self.cache.invalidate(CacheScope.USER, user_id)
        log.info(f"User {user_id} override {key}={granted}")
        return key

    async def clear_user_override(self, user_id: str, module: str, action: str) -> PermissionKey:
        key = self.canonical_key(module, action)
        try:
            await self.user_store.clear_override(user_id, key)
        finally:
            self.cache.invalidate(CacheScope.USER, user_id)
        log.info(f"User {user_id} override for {key} cleared")
        return key

    async def apply_template(self, role: str, template: str) -> TemplateReport:
        return await self.templates.apply(role, template)

    def clear_cache(self) -> None:
        self.cache.clear()


async def build_permission_service(
    session_factory: async_sessionmaker[AsyncSession],
    serialize_writes: bool = False,
    aliases_path: Path | None = None,
    cache_ttl: float | None = None,
) -> PermissionService:
    """Load the catalog and alias table and wire the engine onto the database."""
    repository = SqlAlchemyPermissionRepository(session_factory, serialize_writes=serialize_writes)
    catalog = await PermissionCatalog.load(repository)
    if not len(catalog):
        log.warning("Permission catalog is empty; run scripts.seed_permissions. Every check will be denied.")
    aliases = AliasTable.from_file(aliases_path or config.PERMISSION_ALIASES_PATH)
    aliases.check_catalog(catalog)
    cache = PermissionCache(ttl=config.PERMISSION_CACHE_TTL_SECONDS if cache_ttl is None else cache_ttl)
    return PermissionService(
        catalog,
        aliases,
        role_store=repository,
        user_store=repository,
        cache=cache,
        superadmin_role=config.SUPERADMIN_ROLE,
    )
