"""Fixtures for scheduler tests."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from dropfeed.ingestion.feed_reader import DiscoveredURL
from dropfeed.queue.intake import BatchIntakeResult
from dropfeed.scheduler.config import SchedulerConfig
from dropfeed.scheduler.schemas import SourceRunStatus
from dropfeed.scheduler.service import SourceScheduler


@pytest.fixture
def runs() -> AsyncMock:
    repo = AsyncMock()
    repo.try_start = AsyncMock(
        side_effect=lambda sid, trigger, stale: SourceRunStatus(source_id=sid, trigger=trigger)
    )
    repo.finish = AsyncMock(return_value=True)
    repo.mark_stale = AsyncMock(return_value=[])
    return repo


@pytest.fixture
def sources() -> MagicMock:
    service = MagicMock()
    service.get_pollable_sources = AsyncMock(return_value=[])
    service.prioritize = AsyncMock(return_value=[])
    service.record_run_result = AsyncMock()
    service.repository = MagicMock()
    service.repository.get = AsyncMock(return_value=None)
    return service


@pytest.fixture
def feed_reader() -> MagicMock:
    reader = MagicMock()
    reader.feed_url_for = MagicMock(side_effect=lambda s: s.feed_url)
    reader.discover = AsyncMock(
        return_value=[
            DiscoveredURL(url="https://s1.example.com/a", title="A"),
            DiscoveredURL(url="https://s1.example.com/b", title="B"),
        ]
    )
    return reader


@pytest.fixture
def intake() -> AsyncMock:
    mock = AsyncMock()
    mock.enqueue_discovered = AsyncMock(return_value=BatchIntakeResult(discovered=2, created=2))
    return mock


@pytest.fixture
def scheduler(mock_database, sources, runs, intake, feed_reader) -> SourceScheduler:
    return SourceScheduler(
        database=mock_database,
        sources=sources,
        runs=runs,
        intake=intake,
        feed_reader=feed_reader,
        config=SchedulerConfig(poll_cadence_seconds=3600, max_concurrent_runs=2),
    )


@pytest.fixture
def now() -> datetime:
    return datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
