"""Configuration for the ingestion queue and its maintenance policy."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class QueueConfig(BaseSettings):
    """Queue retry, claim and cleanup settings.

    All settings can be overridden via ``QUEUE_*`` environment variables.
    """

    model_config = SettingsConfigDict(
        env_prefix="QUEUE_",
        case_sensitive=False,
        extra="ignore",
    )

    max_tries: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Retry ceiling; the sweep leaves items at this count in error",
    )
    claim_batch_size: int = Field(
        default=20,
        ge=1,
        le=100,
        description="Items a worker claims per poll",
    )
    worker_concurrency: int = Field(
        default=3,
        ge=1,
        le=32,
        description="Items a single worker processes concurrently",
    )
    worker_poll_interval_seconds: float = Field(
        default=5.0,
        gt=0.0,
        description="Idle sleep between claims when the queue is empty",
    )
    stale_claim_seconds: int = Field(
        default=900,
        ge=60,
        description="A processing item older than this is released to error",
    )
    high_retry_threshold: int = Field(
        default=3,
        ge=1,
        description="tries at or above this count as high-retry in status reports",
    )
    malformed_url_length: int = Field(
        default=2000,
        ge=100,
        description="Error rows with URLs longer than this are cleared as malformed",
    )
    blocked_domains: list[str] = Field(
        default_factory=lambda: [
            "facebook.com",
            "instagram.com",
            "twitter.com",
            "x.com",
            "linkedin.com",
            "tiktok.com",
            "pinterest.com",
            "reddit.com",
            "amazon.com",
            "ebay.com",
            "snapchat.com",
            "discord.com",
            "whatsapp.com",
            "telegram.org",
        ],
        description="Domains whose error rows the clear action moves to failed",
    )
    permanent_error_markers: list[str] = Field(
        default_factory=lambda: [
            "403",
            "404",
            "410",
            "451",
            "forbidden",
            "not found",
            "dns",
            "name or service not known",
            "certificate",
            "ssl",
        ],
        description="Substrings of error_message that mark a permanent failure",
    )
