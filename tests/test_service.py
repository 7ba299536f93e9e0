"""Tests for the write path: canonicalization, store writes and cache invalidation."""

import pytest

from app.features.permissions.cache import CacheScope
from app.features.permissions.errors import StoreUnavailable, UnknownPermissionKey
from app.features.permissions.keys import PermissionKey

from conftest import FUEL_RECORD


class TestRoleGrants:
    async def test_grant_is_visible_immediately_despite_warm_cache(self, service, store):
        assert await service.resolve("u1", "staff", "trucks", "edit") is False
        assert service.cache.peek(CacheScope.ROLE, "staff") is not None

        await service.set_role_grant("staff", "trucks", "edit", True)

        assert service.cache.peek(CacheScope.ROLE, "staff") is None
        assert await service.resolve("u1", "staff", "trucks", "edit") is True

    async def test_revoke_is_visible_immediately(self, service):
        await service.set_role_grant("staff", "trucks", "edit", True)
        assert await service.resolve("u1", "staff", "trucks", "edit") is True
        await service.set_role_grant("staff", "trucks", "edit", False)
        assert await service.resolve("u1", "staff", "trucks", "edit") is False

    async def test_legacy_key_is_written_canonical(self, service, store):
        key = await service.set_role_grant("driver", "fuel", "create", True)
        assert key == FUEL_RECORD
        assert store.role_rows == {("driver", FUEL_RECORD): True}
        assert await service.resolve("d1", "driver", "fuel", "create") is True

    async def test_unknown_key_is_rejected_before_writing(self, service, store):
        with pytest.raises(UnknownPermissionKey):
            await service.set_role_grant("staff", "trucks", "launch", True)
        assert store.calls["set_grant"] == 0

    async def test_failed_write_still_invalidates(self, service, store):
        await service.grants_for("staff")
        store.fail_writes.add(PermissionKey("trucks", "edit"))
        with pytest.raises(StoreUnavailable):
            await service.set_role_grant("staff", "trucks", "edit", True)
        assert service.cache.peek(CacheScope.ROLE, "staff") is None

    async def test_only_the_written_role_is_invalidated(self, service):
        await service.grants_for("staff")
        await service.grants_for("finance")
        await service.set_role_grant("staff", "trucks", "view", True)
        assert service.cache.peek(CacheScope.ROLE, "finance") is not None


class TestUserOverrides:
    async def test_override_visible_immediately(self, service):
        await service.set_role_grant("finance", "invoices", "approve", True)
        assert await service.resolve("U7", "finance", "invoices", "approve") is True

        await service.set_user_override("U7", "invoices", "approve", False)
        assert await service.resolve("U7", "finance", "invoices", "approve") is False
        assert await service.overrides_for("U7") == {"invoices:approve": False}

    async def test_clear_reverts_to_role_default(self, service, store):
        await service.set_role_grant("finance", "invoices", "approve", True)
        await service.set_user_override("U7", "invoices", "approve", False)
        assert await service.resolve("U7", "finance", "invoices", "approve") is False

        await service.clear_user_override("U7", "invoices", "approve")
        assert await service.resolve("U7", "finance", "invoices", "approve") is True
        assert store.user_rows == {}

    async def test_clearing_absent_override_is_ok(self, service):
        key = await service.clear_user_override("U7", "trucks", "view")
        assert key == PermissionKey("trucks", "view")

    async def test_legacy_override_is_written_canonical(self, service, store):
        await service.set_user_override("d1", "fuel", "create", True)
        assert store.user_rows == {("d1", FUEL_RECORD): True}

    async def test_override_write_invalidates_user_not_role(self, service):
        await service.resolve("U7", "finance", "trucks", "view")
        await service.set_user_override("U7", "trucks", "view", True)
        assert service.cache.peek(CacheScope.USER, "U7") is None
        assert service.cache.peek(CacheScope.ROLE, "finance") is not None


async def test_list_effective_via_service(service):
    await service.set_role_grant("driver", "fuel", "record", True)
    await service.set_role_grant("driver", "trucks", "view", True)
    assert await service.list_effective("d1", "driver") == ["fuel:create", "fuel:record", "trucks:view"]
    assert len(await service.list_effective("root", "superadmin")) == 66


async def test_clear_cache(service):
    await service.resolve("u1", "staff", "trucks", "view")
    assert len(service.cache) == 2
    service.clear_cache()
    assert len(service.cache) == 0
