"""Shared pytest fixtures for the permission engine tests."""

import asyncio
import os
import tempfile
from collections import Counter
from collections.abc import AsyncIterator
from typing import Any

# Point the application at a throwaway SQLite file before app modules read config
_DB_DIR = tempfile.mkdtemp(prefix="fleet-permissions-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_DB_DIR}/test.db"
os.environ.setdefault("LOG_LEVEL", "DEBUG")

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from app.core.database.base import Base
from app.core.database.engine import AsyncSessionLocal, engine, init_db
from app.features.permissions.aliases import AliasTable
from app.features.permissions.cache import PermissionCache
from app.features.permissions.catalog import PermissionCatalog
from app.features.permissions.defaults import default_permissions
from app.features.permissions.errors import StoreUnavailable, UnknownPermissionKey
from app.features.permissions.keys import PermissionKey
from app.features.permissions.models import Permission
from app.features.permissions.service import PermissionService
from app.features.users.models import User
from app.main import app as fastapi_app, init_permissions


FUEL_CREATE = PermissionKey("fuel", "create")
FUEL_RECORD = PermissionKey("fuel", "record")


class FakeClock:
    """Monotonic clock the tests move by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakePermissionStore:
    """
    In-memory catalog, role grant and user override store.

    fail_writes: keys whose set_grant/set_override raise StoreUnavailable
    unavailable: every call raises StoreUnavailable
    """

    def __init__(self, keys):
        self.permissions = set(keys)
        self.role_rows: dict[tuple[str, PermissionKey], bool] = {}
        self.user_rows: dict[tuple[str, PermissionKey], bool] = {}
        self.fail_writes: set[PermissionKey] = set()
        self.unavailable = False
        self.calls: Counter = Counter()

    def _enter(self, operation: str) -> None:
        self.calls[operation] += 1
        if self.unavailable:
            raise StoreUnavailable(operation, TimeoutError("simulated timeout"))

    async def list_permissions(self) -> list[PermissionKey]:
        self._enter("list_permissions")
        return sorted(self.permissions)

    async def grants_for(self, role: str) -> frozenset[PermissionKey]:
        self._enter("grants_for")
        await asyncio.sleep(0)
        return frozenset(key for (r, key), granted in self.role_rows.items() if r == role and granted)

    async def set_grant(self, role: str, key: PermissionKey, granted: bool) -> None:
        self._enter("set_grant")
        await asyncio.sleep(0)
        if key in self.fail_writes:
            raise StoreUnavailable("set_grant", TimeoutError("simulated timeout"))
        if key not in self.permissions:
            raise UnknownPermissionKey(str(key))
        self.role_rows[(role, key)] = granted

    async def overrides_for(self, user_id: str) -> dict[PermissionKey, bool]:
        self._enter("overrides_for")
        await asyncio.sleep(0)
        return {key: granted for (u, key), granted in self.user_rows.items() if u == user_id}

    async def set_override(self, user_id: str, key: PermissionKey, granted: bool) -> None:
        self._enter("set_override")
        await asyncio.sleep(0)
        if key in self.fail_writes:
            raise StoreUnavailable("set_override", TimeoutError("simulated timeout"))
        if key not in self.permissions:
            raise UnknownPermissionKey(str(key))
        self.user_rows[(user_id, key)] = granted

    async def clear_override(self, user_id: str, key: PermissionKey) -> None:
        self._enter("clear_override")
        await asyncio.sleep(0)
        self.user_rows.pop((user_id, key), None)


@pytest.fixture()
def catalog_keys() -> list[PermissionKey]:
    """13 modules x 5 grid actions plus fuel:record."""
    return [key for key, _ in default_permissions()]


@pytest.fixture()
def catalog(catalog_keys) -> PermissionCatalog:
    return PermissionCatalog(catalog_keys)


@pytest.fixture()
def aliases() -> AliasTable:
    return AliasTable({FUEL_CREATE: [FUEL_RECORD]})


@pytest.fixture()
def store(catalog_keys) -> FakePermissionStore:
    return FakePermissionStore(catalog_keys)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def cache(clock) -> PermissionCache:
    return PermissionCache(ttl=300, clock=clock)


@pytest.fixture()
def service(catalog, aliases, store, cache) -> PermissionService:
    return PermissionService(catalog, aliases, role_store=store, user_store=store, cache=cache)


# ---------------------------------------------------------------------------
# Database-backed fixtures
# ---------------------------------------------------------------------------

USERS = {
    "root": ("root@example.test", "Root", "superadmin", True),
    "u7": ("u7@example.test", "Finance User", "finance", True),
    "staff1": ("staff1@example.test", "Staff User", "staff", True),
    "driver1": ("driver1@example.test", "Driver User", "driver", True),
    "yard1": ("yard1@example.test", "Yard Driver", "Driver", True),
    "gone": ("gone@example.test", "Former Staff", "staff", False),
}


@pytest_asyncio.fixture()
async def database() -> AsyncIterator[dict[str, str]]:
    """Fresh schema with the default catalog and a handful of users; yields name -> user id."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await init_db()

    user_ids: dict[str, str] = {}
    async with AsyncSessionLocal() as db:
        for key, description in default_permissions():
            db.add(Permission(module=key.module, action=key.action, description=description))
        for name, (email, full_name, role, is_active) in USERS.items():
            user = User(email=email, name=full_name, role=role, is_active=is_active)
            db.add(user)
            await db.flush()
            user_ids[name] = user.id
        await db.commit()

    yield user_ids


@pytest_asyncio.fixture()
async def app(database) -> AsyncIterator[FastAPI]:
    """The application with its permission engine built against the test database."""
    await init_permissions(fastapi_app, AsyncSessionLocal)
    yield fastapi_app
    fastapi_app.state.permissions = None


@pytest_asyncio.fixture()
async def async_client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    """Provide an HTTPX async client bound to the FastAPI app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


@pytest.fixture()
def as_user(database):
    """Headers identifying one of the seeded users."""

    def _headers(name: str) -> dict[str, Any]:
        return {"X-User-Id": database[name]}

    return _headers
