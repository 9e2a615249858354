"""Pytest configuration and fixtures."""
import logging
import os
from types import SimpleNamespace

# Must be set before mixroom.config is imported: the settings object and the
# portal rate limiter are built at import time.
os.environ.setdefault("MIXROOM_RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("MIXROOM_ACCESS_TOKEN_SECRET", "test-secret-for-unit-tests-only-32char")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from mixroom.auth.tokens import create_access_token
from mixroom.db import database
from mixroom.db.database import Base, get_db
from mixroom.db.store import DataStore
from mixroom.main import app

OWNER_ID = "11111111-1111-1111-1111-111111111111"
COLLABORATOR_ID = "22222222-2222-2222-2222-222222222222"
CLIENT_ID = "33333333-3333-3333-3333-333333333333"
STRANGER_ID = "44444444-4444-4444-4444-444444444444"


def pytest_configure(config):
    """Ensure asyncio_mode is auto so async fixtures work when pyproject is not in cwd."""
    if hasattr(config.option, "asyncio_mode") and config.option.asyncio_mode is None:
        config.option.asyncio_mode = "auto"
    logging.getLogger("httpcore").setLevel(logging.CRITICAL)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest_asyncio.fixture
async def db_session():
    """Create an in-memory test database session."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session_factory = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    old_engine = database._engine
    old_factory = database._async_session_factory
    database._engine = engine
    database._async_session_factory = async_session_factory
    try:
        async with async_session_factory() as session:
            async def override_get_db():
                yield session
            app.dependency_overrides[get_db] = override_get_db
            yield session
            app.dependency_overrides.clear()
    finally:
        database._engine = old_engine
        database._async_session_factory = old_factory
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def store(db_session) -> DataStore:
    return DataStore(db_session)


@pytest_asyncio.fixture
async def client(db_session):
    """Async test client bound to the in-memory database."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# -----------------------------------------------------------------------------
# Auth fixtures
# -----------------------------------------------------------------------------


def headers_for(user_id: str) -> dict[str, str]:
    """Bearer headers for *user_id* (1 hour token)."""
    token = create_access_token(user_id=user_id, expires_hours=1)
    return {
        "Authorization": f"Bearer {token}",
        "Content-Type": "application/json",
    }


@pytest.fixture
def owner_headers():
    return headers_for(OWNER_ID)


@pytest.fixture
def collaborator_headers():
    return headers_for(COLLABORATOR_ID)


@pytest.fixture
def client_headers():
    return headers_for(CLIENT_ID)


@pytest.fixture
def stranger_headers():
    return headers_for(STRANGER_ID)


@pytest.fixture
def make_token():
    """Factory for raw access tokens (1 hour) of an arbitrary user."""
    return lambda user_id: create_access_token(user_id=user_id, expires_hours=1)


@pytest.fixture
def users():
    """Fixed user ids matching the *_headers fixtures."""
    return SimpleNamespace(
        owner=OWNER_ID,
        collaborator=COLLABORATOR_ID,
        client=CLIENT_ID,
        stranger=STRANGER_ID,
    )
