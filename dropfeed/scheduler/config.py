"""Configuration for the source scheduler."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SchedulerConfig(BaseSettings):
    """Polling cadence and run-exclusivity settings.

    All settings can be overridden via ``SCHEDULER_*`` environment variables.
    """

    model_config = SettingsConfigDict(
        env_prefix="SCHEDULER_",
        case_sensitive=False,
        extra="ignore",
    )

    poll_cadence_seconds: int = Field(
        default=3600,
        ge=60,
        description="A source is due when its last run started longer ago than this",
    )
    tick_interval_seconds: int = Field(
        default=60,
        ge=5,
        description="Sleep between scheduler ticks",
    )
    max_concurrent_runs: int = Field(
        default=3,
        ge=1,
        le=20,
        description="Sources polled at the same time",
    )
    stale_run_seconds: int = Field(
        default=1800,
        ge=60,
        description="A running row older than this is treated as failed",
    )
