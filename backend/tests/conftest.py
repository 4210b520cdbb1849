# tests/conftest.py — Shared test fixtures
import os
import uuid
from datetime import datetime, timedelta, timezone

import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

# Use SQLite for tests
TEST_DB_URL = "sqlite+aiosqlite:///./test.db"
os.environ["DATABASE_URL"] = TEST_DB_URL
os.environ["JWT_SECRET_KEY"] = "test-secret-key-for-unit-tests-only-min-32-chars"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["ENVIRONMENT"] = "test"

from models import Base, User, Organization, Role, Task
from auth import AuthService, Principal
from database import get_db_session
from main import app

PASSWORD = "Password123!"


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    engine = create_async_engine(TEST_DB_URL, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(db_engine):
    session_factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def client(db_engine):
    """HTTP test client with overridden DB dependency"""
    session_factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


async def _create_org(db_session, name, parent_id=None):
    org = Organization(id=str(uuid.uuid4()), name=name, parent_id=parent_id)
    db_session.add(org)
    await db_session.commit()
    await db_session.refresh(org)
    return org


async def _create_user(db_session, email, org, role):
    user = User(
        id=str(uuid.uuid4()),
        email=email,
        password_hash=AuthService.hash_password(PASSWORD),
        organization_id=org.id,
        role=role,
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


async def _add_dated_tasks(db_session, user, titles):
    """Insert tasks one minute apart, oldest first"""
    base = datetime(2026, 1, 1, tzinfo=timezone.utc)
    for i, title in enumerate(titles):
        db_session.add(Task(
            title=title,
            organization_id=user.organization_id,
            created_by_id=user.id,
            created_at=base + timedelta(minutes=i),
        ))
    await db_session.commit()


@pytest_asyncio.fixture
async def test_org(db_session):
    """Primary organization (org-1 in scenarios)"""
    return await _create_org(db_session, "Acme Corp")


@pytest_asyncio.fixture
async def other_org(db_session):
    """A second, unrelated tenant"""
    return await _create_org(db_session, "Globex")


@pytest_asyncio.fixture
async def owner_user(db_session, test_org):
    return await _create_user(db_session, "owner@acme.com", test_org, Role.OWNER)


@pytest_asyncio.fixture
async def admin_user(db_session, test_org):
    return await _create_user(db_session, "admin@acme.com", test_org, Role.ADMIN)


@pytest_asyncio.fixture
async def viewer_user(db_session, test_org):
    return await _create_user(db_session, "viewer@acme.com", test_org, Role.VIEWER)


@pytest_asyncio.fixture
async def other_admin(db_session, other_org):
    return await _create_user(db_session, "admin@globex.com", other_org, Role.ADMIN)


@pytest_asyncio.fixture
async def other_owner(db_session, other_org):
    return await _create_user(db_session, "owner@globex.com", other_org, Role.OWNER)


def principal_for(user: User) -> Principal:
    """Principal equivalent to what a token issued for ``user`` decodes to"""
    return Principal(
        id=user.id,
        email=user.email,
        organization_id=user.organization_id,
        role=user.role,
    )


def get_auth_headers(user: User) -> dict:
    """Generate auth headers for a user"""
    token = AuthService.token_for_user(user)
    return {"Authorization": f"Bearer {token}"}
