"""Tests for queue payload variants and item validation."""

import pytest

from dropfeed.queue.schemas import (
    QueueItem,
    RssPayload,
    WebsitePayload,
    YouTubePayload,
    payload_for_url,
    payload_from_dict,
    payload_to_dict,
)


class TestPayloadForUrl:
    def test_youtube_url_always_youtube_payload(self):
        payload = payload_for_url("https://www.youtube.com/watch?v=dQw4w9WgXcQ", "rss")
        assert isinstance(payload, YouTubePayload)
        assert payload.video_id == "dQw4w9WgXcQ"

    def test_rss_payload_carries_entry_fields(self):
        payload = payload_for_url(
            "https://example.com/a",
            "rss",
            "https://example.com/feed",
            entry_title="Hello",
        )
        assert isinstance(payload, RssPayload)
        assert payload.feed_url == "https://example.com/feed"
        assert payload.entry_title == "Hello"

    def test_youtube_source_rejects_non_video_url(self):
        with pytest.raises(ValueError, match="non-YouTube"):
            payload_for_url("https://example.com/a", "youtube")

    def test_default_is_website(self):
        assert isinstance(payload_for_url("https://example.com/a"), WebsitePayload)

    def test_invalid_video_id_rejected(self):
        with pytest.raises(ValueError):
            YouTubePayload(video_id="short")


class TestPayloadSerialization:
    def test_round_trip_keeps_kind(self):
        payload = YouTubePayload(video_id="dQw4w9WgXcQ", channel_id="UC123")
        data = payload_to_dict(payload)
        assert data["kind"] == "youtube"
        assert payload_from_dict(data) == payload

    def test_missing_payload_defaults_to_website(self):
        assert isinstance(payload_from_dict(None), WebsitePayload)

    def test_unknown_kind(self):
        with pytest.raises(ValueError, match="Invalid payload kind"):
            payload_from_dict({"kind": "podcast"})

    def test_unexpected_field(self):
        with pytest.raises(ValueError, match="Invalid rss payload"):
            payload_from_dict({"kind": "rss", "feed_url": "x", "bogus": 1})


class TestQueueItem:
    def test_rejects_unknown_status(self):
        with pytest.raises(ValueError, match="Invalid queue status"):
            QueueItem(url="https://example.com/a", status="stuck")

    def test_rejects_negative_tries(self):
        with pytest.raises(ValueError):
            QueueItem(url="https://example.com/a", tries=-1)

    def test_kind_follows_payload(self, sample_queue_item):
        assert sample_queue_item.kind == "rss"
        assert sample_queue_item.is_active
