"""Shared fixtures for sources tests."""

from datetime import datetime, timezone

import pytest


@pytest.fixture
def source_row() -> dict:
    """A dict mimicking an asyncpg Record for a source."""
    return {
        "id": 7,
        "name": "Semi Weekly",
        "homepage_url": "https://semiweekly.example.com",
        "feed_url": "https://semiweekly.example.com/feed.xml",
        "type": "rss",
        "status": "active",
        "official": False,
        "priority_flag": False,
        "consecutive_errors": 0,
        "last_fetched_at": None,
        "last_error": None,
        "created_at": datetime(2026, 1, 1, tzinfo=timezone.utc),
        "updated_at": datetime(2026, 1, 1, tzinfo=timezone.utc),
    }
