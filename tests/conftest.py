"""
Shared pytest fixtures.

Every test gets its own SQLite database file; the application's get_db
dependency is pointed at it so route tests and storage tests see the same
data.
"""

import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./roomchat-test.db"
os.environ["SESSION_SECRET_KEY"] = "test-secret-key"

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from main import app
from roomchat import crud, schemas
from roomchat.database import enable_sqlite_foreign_keys
from roomchat.deps import get_db
from roomchat.models import Base


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'roomchat.db'}", poolclass=NullPool)
    enable_sqlite_foreign_keys(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def make_user(db):
    """Factory upserting a user with the given id."""

    async def _make_user(user_id: str, **profile):
        return await crud.upsert_user(db, schemas.UserUpsert(id=user_id, **profile))

    return _make_user


@pytest.fixture
async def make_client(session_factory):
    """Factory for HTTP clients against the app; logged in when given a user id."""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    clients = []

    async def _make_client(user_id=None, **profile):
        client = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver")
        clients.append(client)
        if user_id is not None:
            response = await client.post("/api/auth/login", json={"id": user_id, **profile})
            assert response.status_code == 200, response.text
        return client

    yield _make_client

    for client in clients:
        await client.aclose()
    app.dependency_overrides.clear()


@pytest.fixture
async def client(make_client):
    return await make_client("alice", email="alice@example.com", firstName="Alice")
