"""Configuration for content fetching and YouTube enrichment."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class IngestionConfig(BaseSettings):
    """Settings for fetching pages and discovering URLs from sources.

    All settings can be overridden via ``INGESTION_*`` environment variables.
    """

    model_config = SettingsConfigDict(
        env_prefix="INGESTION_",
        case_sensitive=False,
        extra="ignore",
    )

    fetch_timeout_seconds: float = Field(
        default=30.0,
        gt=0.0,
        description="Per-request timeout for page and feed fetches",
    )
    max_redirects: int = Field(default=5, ge=0, le=20)
    max_html_bytes: int = Field(
        default=2_000_000,
        ge=10_000,
        description="Response bodies are truncated to this size before parsing",
    )
    max_entries_per_feed: int = Field(
        default=50,
        ge=1,
        le=500,
        description="Entries considered per feed or homepage on each run",
    )
    max_date_age_years: int = Field(
        default=10,
        ge=1,
        description="Extracted publish dates older than this are ignored",
    )


class YouTubeConfig(BaseSettings):
    """Settings for the YouTube Data API v3 enrichment client.

    All settings can be overridden via ``YOUTUBE_*`` environment variables.
    """

    model_config = SettingsConfigDict(
        env_prefix="YOUTUBE_",
        case_sensitive=False,
        extra="ignore",
    )

    api_keys: str | None = Field(
        default=None,
        description="Comma-separated API keys, rotated round-robin",
    )
    api_url: str = Field(default="https://www.googleapis.com/youtube/v3/videos")
    timeout_seconds: float = Field(default=15.0, gt=0.0)
    popularity_view_ceiling: int = Field(
        default=10_000_000,
        ge=10,
        description="View count that maps to a popularity score of 1.0",
    )
    channel_feed_url: str = Field(
        default="https://www.youtube.com/feeds/videos.xml?channel_id={channel_id}",
        description="Uploads feed template for channel sources",
    )
