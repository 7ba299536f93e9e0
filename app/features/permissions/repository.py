"""
SQLAlchemy implementation of the permission stores.

One repository object serves the catalog, role grants and user overrides.
Each call opens its own session from the factory, so concurrent resolutions
and template writes never share a session.
"""
import asyncio
from contextlib import asynccontextmanager, nullcontext
from typing import AsyncIterator
from sqlalchemy import select, delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.features.permissions.errors import StoreUnavailable, UnknownPermissionKey
from app.features.permissions.keys import PermissionKey
from app.features.permissions.models import Permission, RolePermission, UserPermission
from app.utils import get_logger


log = get_logger(__name__)


class SqlAlchemyPermissionRepository:
    """
    Implements PermissionSource, RoleGrantStore and UserOverrideStore.

    serialize_writes should be set for SQLite, which allows a single writer;
    concurrent template writes would otherwise fail with "database is locked".
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], serialize_writes: bool = False):
        self._session_factory = session_factory
        self._write_lock = asyncio.Lock() if serialize_writes else None

    @asynccontextmanager
    async def _session(self, operation: str) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_factory() as session:
                yield session
        except (SQLAlchemyError, OSError, asyncio.TimeoutError) as e:
            log.error(f"Permission store failure during {operation}: {e}", exc_info=True)
            raise StoreUnavailable(operation, e) from e

    def _writing(self):
        return self._write_lock if self._write_lock is not None else nullcontext()

    async def _permission_id(self, session: AsyncSession, key: PermissionKey) -> str:
        stmt = select(Permission.id).where(Permission.module == key.module, Permission.action == key.action)
        permission_id = (await session.execute(stmt)).scalar_one_or_none()
        if permission_id is None:
            raise UnknownPermissionKey(str(key))
        return permission_id

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    async def list_permissions(self) -> list[PermissionKey]:
        async with self._session("list_permissions") as session:
            result = await session.execute(select(Permission.module, Permission.action))
            return [PermissionKey(module, action) for module, action in result.all()]

    # ------------------------------------------------------------------
    # Role grants
    # ------------------------------------------------------------------

    async def grants_for(self, role: str) -> frozenset[PermissionKey]:
        stmt = (
            select(Permission.module, Permission.action)
            .join(RolePermission, RolePermission.permission_id == Permission.id)
            .where(RolePermission.role == role, RolePermission.granted.is_(True))
        )
        async with self._session("grants_for") as session:
            result = await session.execute(stmt)
            return frozenset(PermissionKey(module, action) for module, action in result.all())

    async def set_grant(self, role: str, key: PermissionKey, granted: bool) -> None:
        async with self._writing():
            async with self._session("set_grant") as session:
                async with session.begin():
                    permission_id = await self._permission_id(session, key)
                    stmt = select(RolePermission).where(
                        RolePermission.role == role,
                        RolePermission.permission_id == permission_id,
                    )
                    row = (await session.execute(stmt)).scalar_one_or_none()
                    if row is None:
                        session.add(RolePermission(role=role, permission_id=permission_id, granted=granted))
                    else:
                        row.granted = granted
        log.debug(f"Role grant stored: role={role} key={key} granted={granted}")

    # ------------------------------------------------------------------
    # User overrides
    # ------------------------------------------------------------------

    async def overrides_for(self, user_id: str) -> dict[PermissionKey, bool]:
        stmt = (
            select(Permission.module, Permission.action, UserPermission.granted)
            .join(UserPermission, UserPermission.permission_id == Permission.id)
            .where(UserPermission.user_id == user_id)
        )
        async with self._session("overrides_for") as session:
            result = await session.execute(stmt)
            return {PermissionKey(module, action): granted for module, action, granted in result.all()}

    async def set_override(self, user_id: str, key: PermissionKey, granted: bool) -> None:
        async with self._writing():
            async with self._session("set_override") as session:
                async with session.begin():
                    permission_id = await self._permission_id(session, key)
                    stmt = select(UserPermission).where(
                        UserPermission.user_id == user_id,
                        UserPermission.permission_id == permission_id,
                    )
                    row = (await session.execute(stmt)).scalar_one_or_none()
                    if row is None:
                        session.add(UserPermission(user_id=user_id, permission_id=permission_id, granted=granted))
                    else:
                        row.granted = granted
        log.debug(f"User override stored: user={user_id} key={key} granted={granted}")

    async def clear_override(self, user_id: str, key: PermissionKey) -> None:
        async with self._writing():
            async with self._session("clear_override") as session:
                async with session.begin():
                    permission_id = await self._permission_id(session, key)
                    await session.execute(
                        delete(UserPermission).where(
                            UserPermission.user_id == user_id,
                            UserPermission.permission_id == permission_id,
                        )
                    )
        log.debug(f"User override cleared: user={user_id} key={key}")
