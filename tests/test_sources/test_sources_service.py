"""Tests for SourcesService caching, health and seeding."""

import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from dropfeed.sources.config import SourcesConfig
from dropfeed.sources.schemas import Source
from dropfeed.sources.service import SourcesService


def _service(mock_database, **config) -> SourcesService:
    service = SourcesService(mock_database, config=SourcesConfig(**config))
    service._repo = AsyncMock()
    return service


class TestPollableCache:
    @pytest.mark.asyncio
    async def test_cache_hit_skips_repository(self, mock_database, sample_source):
        service = _service(mock_database)
        service._repo.get_pollable.return_value = [sample_source]

        first = await service.get_pollable_sources()
        second = await service.get_pollable_sources()

        assert first == second == [sample_source]
        assert service._repo.get_pollable.await_count == 1

    @pytest.mark.asyncio
    async def test_zero_ttl_disables_cache(self, mock_database):
        service = _service(mock_database, cache_ttl_seconds=0)
        service._repo.get_pollable.return_value = []

        await service.get_pollable_sources()
        await service.get_pollable_sources()

        assert service._repo.get_pollable.await_count == 2

    @pytest.mark.asyncio
    async def test_prioritize_invalidates(self, mock_database, sample_source):
        service = _service(mock_database)
        service._repo.get_pollable.return_value = [sample_source]
        service._repo.set_priority.return_value = [7]

        await service.get_pollable_sources()
        flagged = await service.prioritize([7, 8])
        await service.get_pollable_sources()

        assert flagged == [7]
        assert service._repo.get_pollable.await_count == 2

    @pytest.mark.asyncio
    async def test_flag_from_another_process_bypasses_cache(self, mock_database, sample_source):
        service = _service(mock_database)
        service._repo.get_pollable.return_value = [sample_source]
        service._repo.latest_priority_at.return_value = None
        await service.get_pollable_sources()

        flagged = Source(name="Flagged", homepage_url="https://f.example.com", id=8, priority_flag=True)
        service._repo.get_pollable.return_value = [flagged, sample_source]
        service._repo.latest_priority_at.return_value = datetime(2026, 3, 1, 12, tzinfo=timezone.utc)

        result = await service.get_pollable_sources()

        assert result == [flagged, sample_source]
        assert service._repo.get_pollable.await_count == 2

    @pytest.mark.asyncio
    async def test_unchanged_marker_keeps_cache(self, mock_database, sample_source):
        service = _service(mock_database)
        service._repo.get_pollable.return_value = [sample_source]
        service._repo.latest_priority_at.return_value = datetime(2026, 3, 1, 12, tzinfo=timezone.utc)

        await service.get_pollable_sources()
        await service.get_pollable_sources()

        assert service._repo.get_pollable.await_count == 1


class TestRunResult:
    @pytest.mark.asyncio
    async def test_success(self, mock_database):
        service = _service(mock_database)
        await service.record_run_result(7)
        service._repo.record_success.assert_awaited_once_with(7, None)
        service._repo.record_failure.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failure_uses_threshold(self, mock_database):
        service = _service(mock_database, max_consecutive_errors=3)
        await service.record_run_result(7, error="HTTP 500")
        service._repo.record_failure.assert_awaited_once_with(7, "HTTP 500", 3, None)

    @pytest.mark.asyncio
    async def test_run_start_passed_for_priority_guard(self, mock_database):
        service = _service(mock_database)
        started = datetime(2026, 3, 1, 12, tzinfo=timezone.utc)

        await service.record_run_result(7, started_at=started)

        service._repo.record_success.assert_awaited_once_with(7, started)


class TestSeeding:
    @pytest.mark.asyncio
    async def test_seed_from_json(self, mock_database, tmp_path):
        seed = tmp_path / "seed.json"
        seed.write_text(json.dumps([
            {"name": "A", "homepage_url": "https://a.example.com", "feed_url": "https://a.example.com/rss"},
            {"name": "B", "homepage_url": "https://b.example.com", "type": "website", "official": True},
        ]))
        service = _service(mock_database)

        count = await service.seed_from_json(seed)

        assert count == 2
        created = [c.args[0] for c in service._repo.create.await_args_list]
        assert all(isinstance(s, Source) for s in created)
        assert created[1].type == "website"
        assert created[1].official is True

    @pytest.mark.asyncio
    async def test_ensure_seeded_disabled(self, mock_database):
        service = _service(mock_database, seed_on_init=False)
        await service.ensure_seeded()
        service._repo.count.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_ensure_seeded_skips_populated_table(self, mock_database):
        service = _service(mock_database, seed_on_init=True)
        service._repo.count.return_value = 3
        await service.ensure_seeded()
        service._repo.create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_bundled_seed_file_parses(self, mock_database):
        service = _service(mock_database, seed_on_init=True)
        service._repo.count.return_value = 0
        await service.ensure_seeded()
        assert service._repo.create.await_count > 0
