# tests/conftest.py — Shared test fixtures
import os
import uuid
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from jose import jwt
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

# Use SQLite for tests
TEST_DB_URL = "sqlite+aiosqlite:///./test.db"
os.environ["DATABASE_URL"] = TEST_DB_URL
os.environ["JWT_SECRET_KEY"] = "test-secret-key-for-unit-tests-only-min-32-chars"
os.environ["ENVIRONMENT"] = "test"

from models import Base, User, Thread, Reply
from permissions import ensure_default_roles, ADMIN_ROLE, MODERATOR_ROLE, MEMBER_ROLE
from auth import SECRET_KEY, ALGORITHM
from database import get_db_session
from main import app

# Monday, 12:00 UTC
BASE_TIME = datetime(2025, 1, 6, 12, 0, tzinfo=timezone.utc)


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


@pytest_asyncio.fixture
async def roles(db_session):
    """The three bootstrap roles, keyed by name"""
    return await ensure_default_roles(db_session)


async def _make_user(db_session, email: str, display_name: str, role=None) -> User:
    user = User(
        id=str(uuid.uuid4()),
        email=email,
        display_name=display_name,
        role_id=role.id if role else None,
        verified=True,
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest_asyncio.fixture
async def test_user(db_session, roles):
    """A regular member"""
    return await _make_user(db_session, "member@forum.test", "Test Member", roles[MEMBER_ROLE])


@pytest_asyncio.fixture
async def other_user(db_session, roles):
    """A second member"""
    return await _make_user(db_session, "other@forum.test", "Other Member", roles[MEMBER_ROLE])


@pytest_asyncio.fixture
async def moderator_user(db_session, roles):
    return await _make_user(db_session, "mod@forum.test", "Moderator", roles[MODERATOR_ROLE])


@pytest_asyncio.fixture
async def admin_user(db_session, roles):
    """An admin: may manage roles and users"""
    return await _make_user(db_session, "admin@forum.test", "Admin User", roles[ADMIN_ROLE])


async def make_thread(db_session, author: User, title: str = "A thread", created_at: datetime = None, **fields) -> Thread:
    """Insert a thread with an explicit creation time"""
    created_at = created_at or BASE_TIME
    thread = Thread(
        id=str(uuid.uuid4()),
        title=title,
        content=fields.pop("content", f"Body of {title}"),
        user_id=author.id,
        created_at=created_at,
        updated_at=created_at,
        **fields,
    )
    db_session.add(thread)
    await db_session.commit()
    return thread


async def make_reply(db_session, author: User, thread: Thread, content: str = "A reply", created_at: datetime = None, **fields) -> Reply:
    """Insert a reply with an explicit creation time"""
    created_at = created_at or BASE_TIME
    reply = Reply(
        id=str(uuid.uuid4()),
        content=content,
        thread_id=thread.id,
        user_id=author.id,
        created_at=created_at,
        updated_at=created_at,
        **fields,
    )
    db_session.add(reply)
    await db_session.commit()
    return reply


def get_auth_headers(user: User) -> dict:
    """Bearer headers for a user, signed like the auth service signs them"""
    token_data = {
        "sub": user.id,
        "email": user.email,
        "type": "access",
        "exp": datetime.now(timezone.utc) + timedelta(minutes=15),
    }
    token = jwt.encode(token_data, SECRET_KEY, algorithm=ALGORITHM)
    return {"Authorization": f"Bearer {token}"}
