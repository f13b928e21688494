"""Shared fixtures for API tests."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from dropfeed.api.app import create_app
from dropfeed.api.auth import verify_api_key
from dropfeed.api.dependencies import (
    get_drop_repository,
    get_engagement_repository,
    get_event_publisher,
    get_preference_repository,
    get_queue_intake,
    get_queue_maintenance,
    get_queue_repository,
    get_ranking_service,
    get_retag_worker,
    get_scheduler,
    get_sources_service,
    get_status_service,
    get_tagging_params_repository,
    get_youtube_reprocessor,
)
from dropfeed.queue.schemas import QueueItem, RssPayload

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def make_queue_item():
    """Factory for QueueItems as the repository returns them."""

    def _make(item_id: int = 55, status: str = "pending", **kwargs) -> QueueItem:
        return QueueItem(
            id=item_id,
            url=kwargs.pop("url", "https://semiweekly.example.com/posts/hbm-supply"),
            payload=kwargs.pop(
                "payload", RssPayload(feed_url="https://semiweekly.example.com/feed.xml")
            ),
            status=status,
            created_at=NOW,
            updated_at=NOW,
            **kwargs,
        )

    return _make


@pytest.fixture
def mock_sources_service():
    service = MagicMock()
    service.repository = AsyncMock()
    service.repository.list_sources = AsyncMock(return_value=([], 0))
    service.repository.get = AsyncMock(return_value=None)
    service.repository.deactivate = AsyncMock(return_value=False)
    service.invalidate_cache = MagicMock()
    return service


@pytest.fixture
def mock_scheduler():
    scheduler = AsyncMock()
    scheduler.prioritize = AsyncMock(return_value=[])
    scheduler.run_now = AsyncMock(return_value=[])
    scheduler.mark_stale_runs = AsyncMock(return_value=[])
    return scheduler


@pytest.fixture
def mock_intake():
    return AsyncMock()


@pytest.fixture
def mock_queue_repo():
    repo = AsyncMock()
    repo.get = AsyncMock(return_value=None)
    repo.retry = AsyncMock(return_value=None)
    return repo


@pytest.fixture
def mock_maintenance():
    return AsyncMock()


@pytest.fixture
def mock_drop_repo():
    repo = AsyncMock()
    repo.mark_deleted = AsyncMock(return_value=False)
    return repo


@pytest.fixture
def mock_params_repo():
    repo = AsyncMock()
    repo.list_params = AsyncMock(return_value=[])
    repo.delete = AsyncMock(return_value=False)
    return repo


@pytest.fixture
def mock_preference_repo():
    repo = AsyncMock()
    repo.get = AsyncMock(return_value=None)
    return repo


@pytest.fixture
def mock_engagement_repo():
    return AsyncMock()


@pytest.fixture
def mock_ranking_service():
    service = AsyncMock()
    service.invalidate = AsyncMock(return_value=0)
    return service


@pytest.fixture
def mock_status_service():
    return AsyncMock()


@pytest.fixture
def mock_reprocessor():
    return AsyncMock()


@pytest.fixture
def mock_retag_worker():
    return AsyncMock()


@pytest.fixture
def client(
    mock_sources_service,
    mock_scheduler,
    mock_intake,
    mock_queue_repo,
    mock_maintenance,
    mock_drop_repo,
    mock_params_repo,
    mock_preference_repo,
    mock_engagement_repo,
    mock_ranking_service,
    mock_status_service,
    mock_reprocessor,
    mock_retag_worker,
):
    """FastAPI TestClient with dependency overrides."""
    app = create_app()

    app.dependency_overrides[verify_api_key] = lambda: "test-key"
    app.dependency_overrides[get_sources_service] = lambda: mock_sources_service
    app.dependency_overrides[get_scheduler] = lambda: mock_scheduler
    app.dependency_overrides[get_queue_intake] = lambda: mock_intake
    app.dependency_overrides[get_queue_repository] = lambda: mock_queue_repo
    app.dependency_overrides[get_queue_maintenance] = lambda: mock_maintenance
    app.dependency_overrides[get_drop_repository] = lambda: mock_drop_repo
    app.dependency_overrides[get_tagging_params_repository] = lambda: mock_params_repo
    app.dependency_overrides[get_preference_repository] = lambda: mock_preference_repo
    app.dependency_overrides[get_engagement_repository] = lambda: mock_engagement_repo
    app.dependency_overrides[get_ranking_service] = lambda: mock_ranking_service
    app.dependency_overrides[get_status_service] = lambda: mock_status_service
    app.dependency_overrides[get_youtube_reprocessor] = lambda: mock_reprocessor
    app.dependency_overrides[get_retag_worker] = lambda: mock_retag_worker
    app.dependency_overrides[get_event_publisher] = lambda: None

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()

