"""
FoodFlow Backend: Test Configuration (conftest.py)
===================================================

What:  Shared pytest fixtures for the whole suite.
How:   Environment overrides first, then real SQLite databases per test
       (aiosqlite, one file under tmp_path, foreign keys on) so SAVEPOINTs,
       constraints and COUNT(*) behave like they do in production.

Fixture Hierarchy:
    Function-scoped (fresh for each test):
    ├── mock_db_session: AsyncMock session for pure unit tests
    ├── db_engine: async engine on an empty SQLite file, schema created
    │   └── session_factory: async_sessionmaker bound to db_engine
    │       ├── db_session: one session for service-level tests
    │       ├── seeded: users alice(1), bob(2), carol(3); recipe 5 owned by alice
    │       └── test_client: HTTPX AsyncClient, get_db_session overridden
    ├── png_bytes: a real 8x8 PNG for upload tests
    └── clear_user_cache (autouse): empties the user directory cache
"""

import os
import tempfile
from io import BytesIO
from unittest.mock import AsyncMock, MagicMock

# Settings are read when foodflow.config is first imported, so the
# environment must be in place before any foodflow import below
_TEST_DIR = tempfile.mkdtemp(prefix="foodflow_test_")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DIR}/app.db"
os.environ["GEMINI_API_KEY"] = "test-key-not-real"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["RATE_LIMIT_REQUESTS"] = "100000"
os.environ["RETRY_MAX_ATTEMPTS"] = "2"

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from PIL import Image
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from foodflow.database import Base, configure_sqlite_transactions, get_db_session
from foodflow.models import RECIPE_STATUS_PUBLIC, Recipe, User
from foodflow.services.user_service import user_service

OWNER_ID = 1
LIKER_ID = 2
OTHER_ID = 3
RECIPE_ID = 5
RECIPE_NAME = "Tomato Soup"


# ══════════════════════════════════════════════════════════════════════════
# Unit-Test Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def mock_db_session():
    """
    A mock AsyncSession for tests that only check call patterns.

    Usage:
        mock_db_session.get.return_value = None
        await notification_service.mark_as_read(mock_db_session, 1, 1)
    """
    session = AsyncMock()
    session.execute = AsyncMock()
    session.get = AsyncMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.add = MagicMock()
    return session


@pytest.fixture(autouse=True)
def clear_user_cache():
    """The user directory is a process-wide singleton; isolate tests from each other."""
    user_service.clear_cache()
    yield
    user_service.clear_cache()


@pytest.fixture
def png_bytes():
    buf = BytesIO()
    Image.new("RGB", (8, 8), (200, 30, 30)).save(buf, format="PNG")
    return buf.getvalue()


# ══════════════════════════════════════════════════════════════════════════
# Database Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """
    Async engine on a fresh SQLite file with the full schema.

    A file (not :memory:) so that every pooled connection sees the same
    database.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/foodflow.db")
    configure_sqlite_transactions(engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def seeded(session_factory):
    """
    alice (1) owns recipe 5 "Tomato Soup"; bob (2) and carol (3) are likers.
    """
    async with session_factory() as session:
        session.add_all(
            [
                User(id=OWNER_ID, username="alice"),
                User(id=LIKER_ID, username="bob"),
                User(id=OTHER_ID, username="carol"),
            ]
        )
        await session.flush()
        session.add(
            Recipe(
                id=RECIPE_ID,
                user_id=OWNER_ID,
                name=RECIPE_NAME,
                status=RECIPE_STATUS_PUBLIC,
            )
        )
        await session.commit()

    return {
        "owner_id": OWNER_ID,
        "liker_id": LIKER_ID,
        "other_id": OTHER_ID,
        "recipe_id": RECIPE_ID,
        "recipe_name": RECIPE_NAME,
    }


# ══════════════════════════════════════════════════════════════════════════
# API Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def test_client(session_factory):
    """
    HTTPX AsyncClient talking to a fresh app instance over ASGI.

    get_db_session is overridden to use the per-test database with the same
    commit-on-success / rollback-on-error contract.

    Usage:
        response = await test_client.post("/recipes/5/like", headers={"X-User-Id": "2"})
    """
    from foodflow.main import create_app

    app = create_app()

    async def override_get_db_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db_session] = override_get_db_session

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
