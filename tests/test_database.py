"""
Tests for mixroom.db.database — request-scoped session lifecycle.

get_db is driven directly as an async generator with a fake session so the
commit/rollback paths can be forced without a real database.
"""
from __future__ import annotations

from unittest.mock import patch

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from mixroom.db import database
from mixroom.errors import TransientError


class FakeSession:
    def __init__(self, commit_error: Exception | None = None) -> None:
        self.commit_error = commit_error
        self.committed = False
        self.rolled_back = False

    async def __aenter__(self) -> FakeSession:
        return self

    async def __aexit__(self, *exc_info) -> None:
        return None

    async def commit(self) -> None:
        if self.commit_error is not None:
            raise self.commit_error
        self.committed = True

    async def rollback(self) -> None:
        self.rolled_back = True


@pytest.fixture
def fake_session(monkeypatch):
    session = FakeSession()
    monkeypatch.setattr(database, "_async_session_factory", lambda: session)
    return session


# =============================================================================
# get_db
# =============================================================================


class TestGetDb:

    @pytest.mark.asyncio
    async def test_commits_when_handler_succeeds(self, fake_session) -> None:
        gen = database.get_db()
        assert await gen.__anext__() is fake_session
        with pytest.raises(StopAsyncIteration):
            await gen.__anext__()
        assert fake_session.committed
        assert not fake_session.rolled_back

    @pytest.mark.asyncio
    async def test_rolls_back_when_handler_raises(self, fake_session) -> None:
        gen = database.get_db()
        await gen.__anext__()
        with pytest.raises(ValueError):
            await gen.athrow(ValueError("boom"))
        assert fake_session.rolled_back
        assert not fake_session.committed

    @pytest.mark.asyncio
    async def test_commit_connection_failure_is_transient(self, fake_session) -> None:
        fake_session.commit_error = OperationalError("COMMIT", {}, Exception("database is locked"))
        gen = database.get_db()
        await gen.__anext__()
        with pytest.raises(TransientError) as exc_info:
            await gen.__anext__()
        assert exc_info.value.retryable
        assert exc_info.value.status_code == 503
        assert fake_session.rolled_back

    @pytest.mark.asyncio
    async def test_other_commit_failures_propagate(self, fake_session) -> None:
        fake_session.commit_error = IntegrityError("COMMIT", {}, Exception("unique"))
        gen = database.get_db()
        await gen.__anext__()
        with pytest.raises(IntegrityError):
            await gen.__anext__()
        assert fake_session.rolled_back

    @pytest.mark.asyncio
    async def test_uninitialized(self, monkeypatch) -> None:
        monkeypatch.setattr(database, "_async_session_factory", None)
        with pytest.raises(RuntimeError):
            await database.get_db().__anext__()


# =============================================================================
# Configuration
# =============================================================================


class TestDatabaseUrl:

    def test_sqlite_default(self) -> None:
        with patch.object(database.settings, "database_url", None):
            assert database.get_database_url() == database.DEFAULT_SQLITE_URL

    def test_configured_url(self) -> None:
        url = "postgresql+asyncpg://mixroom:pw@db:5432/mixroom"
        with patch.object(database.settings, "database_url", url):
            assert database.get_database_url() == url

    def test_engine_options(self) -> None:
        assert database._engine_options("sqlite+aiosqlite:///:memory:") == {
            "connect_args": {"check_same_thread": False},
        }
        assert database._engine_options("postgresql+asyncpg://db/mixroom") == {"pool_pre_ping": True}
