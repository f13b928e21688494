"""Configuration for the sources service."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SourcesConfig(BaseSettings):
    """Settings for source management, health tracking and caching."""

    model_config = SettingsConfigDict(
        env_prefix="SOURCES_",
        case_sensitive=False,
        extra="ignore",
    )

    cache_ttl_seconds: int = Field(
        default=300,
        ge=0,
        description="TTL for the in-memory pollable-source cache (0 = no caching)",
    )
    max_consecutive_errors: int = Field(
        default=5,
        ge=1,
        description="Consecutive failed runs before a source moves to status=error",
    )
    seed_on_init: bool = Field(
        default=False,
        description="Seed sources from the bundled JSON on init if the table is empty",
    )
