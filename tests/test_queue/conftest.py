"""Shared fixtures for queue tests."""

from datetime import datetime, timezone

import pytest


@pytest.fixture
def queue_row() -> dict:
    """A dict mimicking an asyncpg Record for a queue item."""
    return {
        "id": 55,
        "source_id": 7,
        "url": "https://semiweekly.example.com/posts/hbm-supply",
        "status": "pending",
        "tries": 0,
        "error_message": None,
        "payload": '{"kind": "rss", "feed_url": "https://semiweekly.example.com/feed.xml"}',
        "source_label": None,
        "notes": None,
        "claimed_by": None,
        "claimed_at": None,
        "created_at": datetime(2026, 3, 1, tzinfo=timezone.utc),
        "updated_at": datetime(2026, 3, 1, tzinfo=timezone.utc),
    }
