"""Tests for SourceRunRepository."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from dropfeed.scheduler.repository import SourceRunRepository
from dropfeed.scheduler.schemas import STALE_RUN_MESSAGE, SourceRunStatus


def _run_row(**overrides) -> dict:
    row = {
        "source_id": 7,
        "status": "running",
        "trigger": "run_now",
        "started_at": datetime(2026, 3, 1, 12, tzinfo=timezone.utc),
        "finished_at": None,
        "items_ingested": 0,
        "items_discovered": 0,
        "error_message": None,
    }
    row.update(overrides)
    return row


class TestTryStart:
    @pytest.mark.asyncio
    async def test_winner_gets_row(self, mock_database):
        mock_database.fetchrow = AsyncMock(return_value=_run_row())
        repo = SourceRunRepository(mock_database)

        run = await repo.try_start(7, "run_now", 1800)

        assert run.status == "running"
        assert run.trigger == "run_now"
        sql, *args = mock_database.fetchrow.call_args.args
        assert "ON CONFLICT (source_id) DO UPDATE" in sql
        assert "r.status <> 'running'" in sql
        assert args == [7, "run_now", 1800.0]

    @pytest.mark.asyncio
    async def test_live_run_returns_none(self, mock_database):
        mock_database.fetchrow = AsyncMock(return_value=None)
        assert await SourceRunRepository(mock_database).try_start(7, "schedule", 1800) is None


class TestFinish:
    @pytest.mark.asyncio
    async def test_records_terminal_state(self, mock_database):
        mock_database.execute = AsyncMock(return_value="UPDATE 1")
        repo = SourceRunRepository(mock_database)

        started = datetime(2026, 3, 1, 12, tzinfo=timezone.utc)

        assert await repo.finish(7, "error", 0, 3, "x" * 5000, started_at=started) is True
        args = mock_database.execute.call_args.args
        assert args[1:5] == (7, "error", 0, 3)
        assert len(args[5]) == 2000
        assert args[6] == started
        assert "started_at = $6" in args[0]

    @pytest.mark.asyncio
    async def test_no_longer_running(self, mock_database):
        mock_database.execute = AsyncMock(return_value="UPDATE 0")
        repo = SourceRunRepository(mock_database)
        started = datetime(2026, 3, 1, 12, tzinfo=timezone.utc)
        assert await repo.finish(7, "success", started_at=started) is False


@pytest.mark.asyncio
async def test_mark_stale(mock_database):
    mock_database.fetch = AsyncMock(return_value=[{"source_id": 3}, {"source_id": 9}])

    ids = await SourceRunRepository(mock_database).mark_stale(1800)

    assert ids == [3, 9]
    assert mock_database.fetch.call_args.args[1:] == (1800.0, STALE_RUN_MESSAGE)


class TestRunStatus:
    def test_invalid_status(self):
        with pytest.raises(ValueError, match="Invalid run status"):
            SourceRunStatus(source_id=1, status="paused")

    def test_invalid_trigger(self):
        with pytest.raises(ValueError, match="Invalid run trigger"):
            SourceRunStatus(source_id=1, trigger="cron")

    def test_is_stale(self):
        now = datetime(2026, 3, 1, 12, tzinfo=timezone.utc)
        run = SourceRunStatus(source_id=1, started_at=now - timedelta(minutes=31))
        assert run.is_stale(1800, now)
        assert not run.is_stale(3600, now)

    def test_finished_run_never_stale(self):
        now = datetime(2026, 3, 1, 12, tzinfo=timezone.utc)
        run = SourceRunStatus(source_id=1, status="success", started_at=now - timedelta(days=2))
        assert not run.is_stale(1800, now)
