"""Tests for the dropfeed CLI commands."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner

from dropfeed.cli import main
from dropfeed.queue.maintenance import ClearResult
from dropfeed.scheduler.schemas import RunOutcome
from dropfeed.status.schemas import Alert, StatusSnapshot
from dropfeed.workers.reprocess import PassResult


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def mock_db():
    db = AsyncMock()
    db.connect = AsyncMock()
    db.close = AsyncMock()
    return db


class TestInitDb:
    def test_creates_tables_and_seeds(self, runner, mock_db):
        service = MagicMock()
        service.repository.count = AsyncMock(return_value=0)
        service.seed_from_json = AsyncMock(return_value=12)

        with patch("dropfeed.storage.database.Database", return_value=mock_db), \
             patch("dropfeed.storage.schema.create_tables",
                   AsyncMock(return_value=["a", "b", "c"])), \
             patch("dropfeed.sources.service.SourcesService", return_value=service):
            result = runner.invoke(main, ["init-db"])

        assert result.exit_code == 0
        assert "Database initialized (3 tables)" in result.output
        assert "Seeded 12 sources" in result.output
        mock_db.close.assert_awaited_once()

    def test_skips_seed_when_sources_exist(self, runner, mock_db):
        service = MagicMock()
        service.repository.count = AsyncMock(return_value=4)
        service.seed_from_json = AsyncMock()

        with patch("dropfeed.storage.database.Database", return_value=mock_db), \
             patch("dropfeed.storage.schema.create_tables", AsyncMock(return_value=["a"])), \
             patch("dropfeed.sources.service.SourcesService", return_value=service):
            result = runner.invoke(main, ["init-db"])

        assert result.exit_code == 0
        assert "Sources already present, skipping seed" in result.output
        service.seed_from_json.assert_not_awaited()

    def test_no_seed_flag(self, runner, mock_db):
        with patch("dropfeed.storage.database.Database", return_value=mock_db), \
             patch("dropfeed.storage.schema.create_tables", AsyncMock(return_value=["a"])), \
             patch("dropfeed.sources.service.SourcesService") as service_cls:
            result = runner.invoke(main, ["init-db", "--no-seed"])

        assert result.exit_code == 0
        service_cls.assert_not_called()


class TestRunOnce:
    def test_tick_then_drain(self, runner, mock_db):
        sched = MagicMock()
        sched.tick = AsyncMock(return_value=[
            RunOutcome(source_id=3, status="success", items_ingested=4),
            RunOutcome(source_id=5, status="error", error="HTTP 503"),
        ])
        worker = MagicMock()
        worker.run_once = AsyncMock(side_effect=[4, 1, 0])

        with patch("dropfeed.storage.database.Database", return_value=mock_db), \
             patch("dropfeed.scheduler.service.SourceScheduler", return_value=sched), \
             patch("dropfeed.workers.ingest_worker.IngestWorker", return_value=worker):
            result = runner.invoke(main, ["run-once"])

        assert result.exit_code == 0
        assert "3: success (4 ingested)" in result.output
        assert "5: error (0 ingested) - HTTP 503" in result.output
        assert "Queue items processed: 5 in 2 batch(es)" in result.output

    def test_explicit_sources_run_now(self, runner, mock_db):
        sched = MagicMock()
        sched.run_now = AsyncMock(return_value=[])
        sched.tick = AsyncMock()
        worker = MagicMock()
        worker.run_once = AsyncMock(return_value=0)

        with patch("dropfeed.storage.database.Database", return_value=mock_db), \
             patch("dropfeed.scheduler.service.SourceScheduler", return_value=sched), \
             patch("dropfeed.workers.ingest_worker.IngestWorker", return_value=worker):
            result = runner.invoke(main, ["run-once", "--source-id", "3", "--source-id", "8"])

        assert result.exit_code == 0
        sched.run_now.assert_awaited_once_with([3, 8], wait=True)
        sched.tick.assert_not_awaited()
        assert "No sources due" in result.output

    def test_max_batches_caps_draining(self, runner, mock_db):
        sched = MagicMock()
        sched.tick = AsyncMock(return_value=[])
        worker = MagicMock()
        worker.run_once = AsyncMock(return_value=20)

        with patch("dropfeed.storage.database.Database", return_value=mock_db), \
             patch("dropfeed.scheduler.service.SourceScheduler", return_value=sched), \
             patch("dropfeed.workers.ingest_worker.IngestWorker", return_value=worker):
            result = runner.invoke(main, ["run-once", "--max-batches", "2"])

        assert result.exit_code == 0
        assert worker.run_once.await_count == 2
        assert "Queue items processed: 40 in 2 batch(es)" in result.output


class TestQueueCommands:
    def test_sweep(self, runner, mock_db):
        maintenance = MagicMock()
        maintenance.release_stale_claims = AsyncMock(return_value=[9])
        maintenance.sweep = AsyncMock(return_value=[1, 2])

        with patch("dropfeed.storage.database.Database", return_value=mock_db), \
             patch("dropfeed.queue.maintenance.QueueMaintenance", return_value=maintenance):
            result = runner.invoke(main, ["sweep"])

        assert result.exit_code == 0
        assert "Released stale claims: 1" in result.output
        assert "Requeued errors:       2" in result.output

    def test_clear_errors(self, runner, mock_db):
        maintenance = MagicMock()
        maintenance.clear_errors = AsyncMock(return_value=ClearResult(
            cleared_ids=[4, 5], reasons={"max_tries": 2}, examined=3, kept=1,
        ))

        with patch("dropfeed.storage.database.Database", return_value=mock_db), \
             patch("dropfeed.queue.maintenance.QueueMaintenance", return_value=maintenance):
            result = runner.invoke(main, ["clear-errors", "--limit", "10"])

        assert result.exit_code == 0
        maintenance.clear_errors.assert_awaited_once_with(force=False, limit=10)
        assert "Cleared:  2" in result.output
        assert "Kept:     1" in result.output
        assert "max_tries: 2" in result.output

    def test_clear_errors_dry_run_does_not_write(self, runner, mock_db):
        repo = MagicMock()
        repo.list_errors = AsyncMock(return_value=[MagicMock(), MagicMock()])
        maintenance = MagicMock()
        maintenance.classify = MagicMock(side_effect=["malformed_url", None])
        maintenance.clear_errors = AsyncMock()

        with patch("dropfeed.storage.database.Database", return_value=mock_db), \
             patch("dropfeed.queue.repository.IngestionQueueRepository", return_value=repo), \
             patch("dropfeed.queue.maintenance.QueueMaintenance", return_value=maintenance):
            result = runner.invoke(main, ["clear-errors", "--dry-run"])

        assert result.exit_code == 0
        assert "[DRY RUN] Examined 2 error rows" in result.output
        assert "Would clear: 1" in result.output
        maintenance.clear_errors.assert_not_awaited()


class TestRepairPasses:
    def test_reprocess_youtube(self, runner, mock_db):
        reprocessor = MagicMock()
        reprocessor.run = AsyncMock(return_value=PassResult(examined=3, updated=2, skipped=1))

        with patch("dropfeed.storage.database.Database", return_value=mock_db), \
             patch("dropfeed.workers.reprocess.YouTubeReprocessor", return_value=reprocessor):
            result = runner.invoke(main, ["reprocess-youtube", "--limit", "3"])

        assert result.exit_code == 0
        reprocessor.run.assert_awaited_once_with(limit=3)
        assert "Updated:  2" in result.output

    def test_retag_reports_early_stop(self, runner, mock_db):
        worker = MagicMock()
        worker.run_once = AsyncMock(
            return_value=PassResult(examined=5, failed=5, stopped_early=True)
        )

        with patch("dropfeed.storage.database.Database", return_value=mock_db), \
             patch("dropfeed.tagging.client.TaggingService"), \
             patch("dropfeed.workers.reprocess.RetagWorker", return_value=worker):
            result = runner.invoke(main, ["retag"])

        assert result.exit_code == 0
        worker.run_once.assert_awaited_once_with(limit=25)
        assert "Failed:   5" in result.output
        assert "Stopped early" in result.output


class TestStatusCommand:
    def _snapshot(self, alerts=None):
        return StatusSnapshot(
            sources={},
            queue={"counts": {"pending": 3, "error": 1}, "oldest_pending_age_seconds": 42},
            coverage={"total": 10, "tagged": 8},
            source_counts={"active": 5},
            alerts=alerts or [],
            recommendations=["Run the retag pass"] if alerts else [],
        )

    def test_text_output(self, runner, mock_db):
        service = MagicMock()
        service.snapshot = AsyncMock(return_value=self._snapshot(
            alerts=[Alert("untagged_backlog", "warning", "250 drops untagged", 250)]
        ))

        with patch("dropfeed.storage.database.Database", return_value=mock_db), \
             patch("dropfeed.status.service.StatusService", return_value=service):
            result = runner.invoke(main, ["status"])

        assert result.exit_code == 0
        assert "Overall: warning" in result.output
        assert "pending: 3" in result.output
        assert "oldest pending: 42s" in result.output
        assert "Coverage: 8/10 drops tagged" in result.output
        assert "[warning] 250 drops untagged" in result.output
        assert "-> Run the retag pass" in result.output

    def test_json_output(self, runner, mock_db):
        service = MagicMock()
        service.snapshot = AsyncMock(return_value=self._snapshot())

        with patch("dropfeed.storage.database.Database", return_value=mock_db), \
             patch("dropfeed.status.service.StatusService", return_value=service):
            result = runner.invoke(main, ["status", "--json"])

        assert result.exit_code == 0
        payload = json.loads(result.output)
        assert payload["overall"] == "healthy"
