"""Tests for the session helpers' commit/rollback contract."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from app.core import database
from app.core.config import settings


def _async_maker(session: AsyncMock) -> MagicMock:
    context = MagicMock()
    context.__aenter__ = AsyncMock(return_value=session)
    context.__aexit__ = AsyncMock(return_value=False)
    return MagicMock(return_value=context)


def _sync_maker(session: MagicMock) -> MagicMock:
    context = MagicMock()
    context.__enter__.return_value = session
    context.__exit__.return_value = False
    return MagicMock(return_value=context)


class TestEngines:
    def test_pool_sizes_follow_settings(self):
        assert database.async_engine.sync_engine.pool.size() == settings.database_pool_size
        assert database.sync_engine.pool.size() == settings.worker_database_pool_size
        assert database.async_engine.sync_engine.echo is settings.database_echo


class TestGetDb:
    @pytest.mark.asyncio
    async def test_commits_when_handler_succeeds(self):
        session = AsyncMock()
        with patch.object(database, "async_session_maker", _async_maker(session)):
            gen = database.get_db()
            assert await gen.__anext__() is session
            with pytest.raises(StopAsyncIteration):
                await gen.__anext__()

        session.commit.assert_awaited_once()
        session.rollback.assert_not_called()

    @pytest.mark.asyncio
    async def test_rolls_back_when_handler_raises(self):
        session = AsyncMock()
        with patch.object(database, "async_session_maker", _async_maker(session)):
            gen = database.get_db()
            await gen.__anext__()
            with pytest.raises(ValueError):
                await gen.athrow(ValueError("bad report"))

        session.rollback.assert_awaited_once()
        session.commit.assert_not_called()


class TestGetSyncSession:
    def test_commits_on_success(self):
        session = MagicMock()
        with patch.object(database, "sync_session_maker", _sync_maker(session)):
            with database.get_sync_session() as db:
                assert db is session

        session.commit.assert_called_once()

    def test_rolls_back_on_error(self):
        session = MagicMock()
        with patch.object(database, "sync_session_maker", _sync_maker(session)):
            with pytest.raises(RuntimeError):
                with database.get_sync_session():
                    raise RuntimeError("send failed")

        session.rollback.assert_called_once()
        session.commit.assert_not_called()
