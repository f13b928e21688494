"""Tests for QueueIntake dedup order and batch discovery."""

from unittest.mock import AsyncMock

import pytest

from dropfeed.queue.intake import DiscoveryCandidate, QueueIntake
from dropfeed.queue.schemas import QueueItem, YouTubePayload


@pytest.fixture
def queue_repo() -> AsyncMock:
    repo = AsyncMock()
    repo.enqueue = AsyncMock(return_value=None)
    repo.get_by_url = AsyncMock(return_value=None)
    repo.enqueue_many = AsyncMock(return_value=0)
    return repo


@pytest.fixture
def drop_repo() -> AsyncMock:
    repo = AsyncMock()
    repo.exists_by_url = AsyncMock(return_value=None)
    repo.existing_urls = AsyncMock(return_value=set())
    return repo


class TestSubmit:
    @pytest.mark.asyncio
    async def test_invalid_url(self, queue_repo, drop_repo):
        result = await QueueIntake(queue_repo, drop_repo).submit("data:text/plain,hi")
        assert result.status == "invalid"
        assert result.error == "data URI"
        drop_repo.exists_by_url.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_existing_drop_wins(self, queue_repo, drop_repo):
        drop_repo.exists_by_url.return_value = 101
        result = await QueueIntake(queue_repo, drop_repo).submit(
            "http://Example.com/a?utm_source=x"
        )
        assert result.status == "exists"
        assert result.drop_id == 101
        assert result.normalized_url == "https://example.com/a"
        queue_repo.enqueue.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_new_url_queued(self, queue_repo, drop_repo):
        queue_repo.enqueue.return_value = QueueItem(id=9, url="https://example.com/a")
        result = await QueueIntake(queue_repo, drop_repo).submit(
            "https://example.com/a", source_label="newsletter", notes="from a reader"
        )
        assert result.status == "queued"
        assert result.queue_id == 9
        assert result.queue_status == "pending"
        kwargs = queue_repo.enqueue.await_args.kwargs
        assert kwargs["source_label"] == "newsletter"
        assert kwargs["notes"] == "from a reader"

    @pytest.mark.asyncio
    async def test_already_queued(self, queue_repo, drop_repo):
        queue_repo.get_by_url.return_value = QueueItem(
            id=4, url="https://example.com/a", status="error", tries=2
        )
        result = await QueueIntake(queue_repo, drop_repo).submit("https://example.com/a")
        assert result.status == "in_queue"
        assert result.queue_id == 4
        assert result.queue_status == "error"

    @pytest.mark.asyncio
    async def test_youtube_url_gets_video_payload(self, queue_repo, drop_repo):
        queue_repo.enqueue.return_value = QueueItem(
            id=1, url="https://www.youtube.com/watch?v=dQw4w9WgXcQ"
        )
        await QueueIntake(queue_repo, drop_repo).submit("https://youtu.be/dQw4w9WgXcQ")
        url, payload = queue_repo.enqueue.await_args.args
        assert url == "https://www.youtube.com/watch?v=dQw4w9WgXcQ"
        assert isinstance(payload, YouTubePayload)


class TestEnqueueDiscovered:
    @pytest.mark.asyncio
    async def test_counts_invalid_known_and_created(self, queue_repo, drop_repo):
        drop_repo.existing_urls.return_value = {"https://example.com/old"}
        queue_repo.enqueue_many.return_value = 1
        candidates = [
            DiscoveryCandidate(url="https://example.com/old", source_type="website"),
            DiscoveryCandidate(url="https://example.com/new/", source_type="website"),
            DiscoveryCandidate(url="https://example.com/new", source_type="website"),
            DiscoveryCandidate(url="javascript:alert(1)", source_type="website"),
        ]

        result = await QueueIntake(queue_repo, drop_repo).enqueue_discovered(candidates, 7)

        assert result.discovered == 4
        assert result.invalid == 1
        assert result.already_drops == 1
        assert result.created == 1
        batch = queue_repo.enqueue_many.await_args.args[0]
        assert [entry[0] for entry in batch] == ["https://example.com/new"]
        assert batch[0][1] == 7

    @pytest.mark.asyncio
    async def test_nothing_valid(self, queue_repo, drop_repo):
        result = await QueueIntake(queue_repo, drop_repo).enqueue_discovered(
            [DiscoveryCandidate(url="")]
        )
        assert result.invalid == 1
        drop_repo.existing_urls.assert_not_awaited()
