"""
Centralized Test Configuration.

In-memory SQLite database, an in-process Redis stand-in for OTP state and
token revocation, local-disk storage under tmp_path, and a recording SMS
client. Every override is installed per test.
"""

import time
import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event, select
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool, Pool

from welfare_admin.app.main import app
from welfare_admin.app.db.session import get_db, Base
from welfare_admin.app.core.redis_client import get_redis
from welfare_admin.app.core.jwt import create_access_token
import welfare_admin.app.core.redis_client as redis_client_module
import welfare_admin.app.main as main_module
from welfare_admin.app.models.enums import UserRole
from welfare_admin.app.models.rbac import Permission, Role, UserRoleAssignment
from welfare_admin.app.models.user import User
from welfare_admin.app.services.sms import get_sms_client
from welfare_admin.app.services.storage import LocalStorage, get_storage

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


class MockRedis:
    """Dict-backed async Redis subset with expiry."""

    def __init__(self):
        self.store = {}
        self.expiry = {}

    def _alive(self, key):
        deadline = self.expiry.get(key)
        if deadline is not None and deadline <= time.monotonic():
            self.store.pop(key, None)
            self.expiry.pop(key, None)
        return key in self.store

    async def ping(self):
        return True

    async def get(self, key):
        return self.store.get(key) if self._alive(key) else None

    async def set(self, key, value, ex=None, nx=False):
        if nx and self._alive(key):
            return None
        self.store[key] = str(value)
        if ex:
            self.expiry[key] = time.monotonic() + ex
        else:
            self.expiry.pop(key, None)
        return True

    async def setex(self, key, seconds, value):
        return await self.set(key, value, ex=seconds)

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            if self._alive(key):
                del self.store[key]
                self.expiry.pop(key, None)
                removed += 1
        return removed

    async def exists(self, key):
        return 1 if self._alive(key) else 0

    async def incr(self, key):
        value = int(self.store.get(key, 0)) + 1 if self._alive(key) else 1
        self.store[key] = str(value)
        return value

    async def expire(self, key, seconds):
        if not self._alive(key):
            return False
        self.expiry[key] = time.monotonic() + seconds
        return True

    async def ttl(self, key):
        if not self._alive(key):
            return -2
        deadline = self.expiry.get(key)
        if deadline is None:
            return -1
        return max(int(deadline - time.monotonic()), 0)

    async def flushdb(self):
        self.store = {}
        self.expiry = {}

    async def aclose(self):
        await self.flushdb()


class RecordingSMSClient:
    """Captures OTPs instead of sending them."""

    def __init__(self):
        self.sent = []
        self.fail_with = None

    async def send_otp(self, phone, code, purpose):
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append({"phone": phone, "code": code, "purpose": purpose})

    def last_code(self, phone):
        return next(m["code"] for m in reversed(self.sent) if m["phone"] == phone)


@pytest.fixture
def mock_redis():
    return MockRedis()


@pytest.fixture
def sms_client():
    return RecordingSMSClient()


@pytest.fixture
def storage(tmp_path):
    return LocalStorage(tmp_path / "storage", "/static")


async def drop_schema():
    # roles.inherits_from_id is RESTRICT; SQLite checks it row by row on DROP TABLE
    async with engine.connect() as conn:
        await conn.exec_driver_sql("PRAGMA foreign_keys=OFF")
        await conn.run_sync(Base.metadata.drop_all)
        await conn.exec_driver_sql("PRAGMA foreign_keys=ON")
        await conn.commit()


@pytest.fixture
def schema_teardown():
    return drop_schema


@pytest.fixture(autouse=True)
async def setup_database(mock_redis, sms_client, storage, monkeypatch):
    """Fresh schema and overrides for every test."""
    monkeypatch.setattr(redis_client_module, "redis_client", mock_redis)
    monkeypatch.setattr(main_module, "engine", engine)

    async def override_get_db():
        async with TestingSessionLocal() as session:
            yield session

    async def override_get_redis():
        return mock_redis

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis
    app.dependency_overrides[get_sms_client] = lambda: sms_client
    app.dependency_overrides[get_storage] = lambda: storage

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield

    await drop_schema()
    app.dependency_overrides = {}


@pytest.fixture
async def client():
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


# Shared session for fixture data creation
@pytest.fixture
async def db_session():
    async with TestingSessionLocal() as session:
        yield session


def auth_headers(user: User) -> dict:
    token = create_access_token({"sub": user.phone, "user_id": user.id, "role": user.role.value})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def headers_for():
    return auth_headers


@pytest.fixture
def make_user(db_session):
    """Factory: await make_user(role=..., phone=..., district=..., area=...)."""
    counter = {"n": 0}

    async def _make(role=UserRole.BENEFICIARY, phone=None, **fields):
        counter["n"] += 1
        user = User(
            phone=phone or f"90000{counter['n']:05d}",
            name=fields.pop("name", f"User {counter['n']}"),
            role=role,
            is_active=fields.pop("is_active", True),
            is_verified=True,
            **fields,
        )
        db_session.add(user)
        await db_session.commit()
        await db_session.refresh(user)
        return user

    return _make


@pytest.fixture
async def super_admin(make_user):
    return await make_user(UserRole.SUPER_ADMIN, phone="9999999999", name="Root")


@pytest.fixture
async def admin_headers(super_admin):
    return auth_headers(super_admin)


@pytest.fixture
def grant(db_session):
    """
    Give a user a custom role carrying the named permissions.

    Usage: await grant(user, "website.read", "website.write")
    """
    async def _grant(user: User, *permission_names: str):
        perms = []
        for name in permission_names:
            perm = (await db_session.execute(select(Permission).where(Permission.name == name))).scalar_one_or_none()
            if perm is None:
                module, _, action = name.partition(".")
                perm = Permission(name=name, display_name=name, module=module, category=action or "read")
                db_session.add(perm)
            perms.append(perm)
        role = Role(name=f"role_{user.id}_{len(perms)}", display_name="Test role", level=1)
        role.permissions = perms
        db_session.add(role)
        await db_session.flush()
        db_session.add(UserRoleAssignment(user_id=user.id, role_id=role.id))
        await db_session.commit()
        return role

    return _grant
