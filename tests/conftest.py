"""
Test configuration and fixtures.

Every test gets a fresh in-memory SQLite database (aiosqlite) and an
in-process snapshot store, so no PostgreSQL or Redis is needed.
"""

import os

# Settings are read at import time
os.environ.setdefault("PASSWORD_HASH_ROUNDS", "4")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-for-content-service-0123456789")
os.environ.setdefault("LOG_JSON", "false")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import httpx
import pytest
import pytest_asyncio

from content_service.app import create_app
from content_service.cache import CacheSynchronizer, MemorySnapshotStore
from content_service.core.context import Ctx
from content_service.core.security import create_access_token
from content_service.database import DatabaseManager
from content_service.repositories import (
    CACHED_ENTITIES,
    AuthorBmc,
    EditBmc,
    ModelManager,
    PostBmc,
)

SQLITE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture
async def db():
    """Fresh in-memory database with all tables."""
    manager = DatabaseManager(SQLITE_URL)
    await manager.connect()
    await manager.init_db()
    yield manager
    await manager.disconnect()


@pytest.fixture
def snapshot_store():
    return MemorySnapshotStore()


@pytest_asyncio.fixture
async def cache(db, snapshot_store):
    synchronizer = CacheSynchronizer(snapshot_store, db, CACHED_ENTITIES)
    await synchronizer.start()
    yield synchronizer
    await synchronizer.stop()


@pytest.fixture
def mm(db, cache):
    """ModelManager over the test database and cache."""
    return ModelManager(db, cache=cache)


@pytest.fixture
def mm_no_cache(db):
    return ModelManager(db)


@pytest.fixture
def root_ctx():
    return Ctx.root_ctx()


@pytest.fixture
def create_author(mm, root_ctx):
    """Factory inserting an author and returning its id."""

    async def _create(name="Ada", email=None, password="correct-horse"):
        email = email or f"{name.lower()}@example.com"
        return await AuthorBmc.create(
            root_ctx, mm, {"name": name, "email": email, "password": password}
        )

    return _create


@pytest.fixture
def create_post(mm, root_ctx):
    """Factory inserting a post and returning its id."""

    async def _create(title="Post", content="Body", weight=0):
        return await PostBmc.create(
            root_ctx, mm, {"title": title, "content": content, "weight": weight}
        )

    return _create


@pytest.fixture
def create_edit(mm, root_ctx):
    """Factory inserting a PENDING edit suggestion and returning its id."""

    async def _create(post_id, editor_id, new_content="Better body"):
        return await EditBmc.create(
            root_ctx,
            mm,
            {"post_id": post_id, "editor_id": editor_id, "new_content": new_content},
        )

    return _create


@pytest_asyncio.fixture
async def client(mm):
    """HTTP client against the app, sharing the test ModelManager."""
    app = create_app(mm)
    app.state.mm = mm
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as test_client:
        yield test_client


@pytest_asyncio.fixture
async def signed_in(create_author):
    """(author id, bearer headers) of a freshly created author."""
    author_id = await create_author(name="Grace")
    token = create_access_token(author_id, "grace@example.com")
    return author_id, {"Authorization": f"Bearer {token}"}
