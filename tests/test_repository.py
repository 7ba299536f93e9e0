"""Tests for the SQLAlchemy permission repository against SQLite."""

import pytest
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.core.database.engine import AsyncSessionLocal
from app.features.permissions.aliases import AliasTable
from app.features.permissions.cache import PermissionCache
from app.features.permissions.catalog import PermissionCatalog
from app.features.permissions.errors import StoreUnavailable, UnknownPermissionKey
from app.features.permissions.keys import PermissionKey
from app.features.permissions.models import RolePermission
from app.features.permissions.repository import SqlAlchemyPermissionRepository
from app.features.permissions.service import PermissionService

from conftest import FUEL_CREATE, FUEL_RECORD


TRUCKS_VIEW = PermissionKey("trucks", "view")
TRUCKS_EDIT = PermissionKey("trucks", "edit")


@pytest.fixture()
def repository(database) -> SqlAlchemyPermissionRepository:
    return SqlAlchemyPermissionRepository(AsyncSessionLocal, serialize_writes=True)


async def test_list_permissions_returns_seeded_catalog(repository):
    keys = await repository.list_permissions()
    assert len(keys) == 66
    assert FUEL_RECORD in keys


class TestRoleGrants:
    async def test_upsert_flips_existing_row(self, repository):
        await repository.set_grant("staff", TRUCKS_VIEW, True)
        await repository.set_grant("staff", TRUCKS_EDIT, True)
        assert await repository.grants_for("staff") == frozenset({TRUCKS_VIEW, TRUCKS_EDIT})

        await repository.set_grant("staff", TRUCKS_EDIT, False)
        assert await repository.grants_for("staff") == frozenset({TRUCKS_VIEW})

        async with AsyncSessionLocal() as db:
            rows = (await db.execute(select(func.count()).select_from(RolePermission))).scalar()
        assert rows == 2

    async def test_grants_are_per_role(self, repository):
        await repository.set_grant("staff", TRUCKS_VIEW, True)
        assert await repository.grants_for("driver") == frozenset()

    async def test_unknown_key(self, repository):
        with pytest.raises(UnknownPermissionKey):
            await repository.set_grant("staff", PermissionKey("trucks", "launch"), True)


class TestUserOverrides:
    async def test_set_and_clear(self, repository):
        await repository.set_override("U7", TRUCKS_VIEW, False)
        await repository.set_override("U7", FUEL_RECORD, True)
        assert await repository.overrides_for("U7") == {TRUCKS_VIEW: False, FUEL_RECORD: True}

        await repository.set_override("U7", TRUCKS_VIEW, True)
        assert (await repository.overrides_for("U7"))[TRUCKS_VIEW] is True

        await repository.clear_override("U7", TRUCKS_VIEW)
        assert await repository.overrides_for("U7") == {FUEL_RECORD: True}

    async def test_clear_missing_override_is_noop(self, repository):
        await repository.clear_override("U7", TRUCKS_VIEW)
        assert await repository.overrides_for("U7") == {}

    async def test_unknown_key(self, repository):
        with pytest.raises(UnknownPermissionKey):
            await repository.set_override("U7", PermissionKey("spaceships", "view"), True)


async def test_unreachable_database_raises_store_unavailable(tmp_path):
    broken_engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path}/missing-dir/db.sqlite",
        poolclass=NullPool,
    )
    factory = async_sessionmaker(broken_engine, class_=AsyncSession, expire_on_commit=False)
    repository = SqlAlchemyPermissionRepository(factory)

    with pytest.raises(StoreUnavailable):
        await repository.grants_for("staff")
    with pytest.raises(StoreUnavailable):
        await repository.set_grant("staff", TRUCKS_VIEW, True)

    await broken_engine.dispose()


async def test_template_against_database(repository):
    catalog = await PermissionCatalog.load(repository)
    service = PermissionService(
        catalog,
        AliasTable({FUEL_CREATE: [FUEL_RECORD]}),
        role_store=repository,
        user_store=repository,
        cache=PermissionCache(ttl=300),
    )

    report = await service.apply_template("staff", "staff")

    assert report.complete, report.failed
    assert len(report.succeeded) == 65
    grants = await service.grants_for("staff", fresh=True)
    assert len(grants) == 39
    assert await service.resolve("s1", "staff", "fuel", "create") is True
