"""Configuration for the status surface."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class StatusConfig(BaseSettings):
    """Alert thresholds and poll hints.

    All settings can be overridden via environment variables with the
    ``STATUS_`` prefix (e.g. ``STATUS_PENDING_BACKLOG_CRITICAL=1000``).
    """

    model_config = SettingsConfigDict(
        env_prefix="STATUS_",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Alerts ───────────────────────────────────────────────
    pending_backlog_warning: int = Field(
        default=200,
        description="Pending queue rows above which a warning is raised",
    )
    pending_backlog_critical: int = Field(
        default=500,
        description="Pending queue rows above which the system is critical",
    )
    high_retry_warning: int = Field(
        default=100,
        description="Items failing repeatedly above which a warning is raised",
    )
    untagged_warning: int = Field(
        default=200,
        description="Untagged drops above which a warning is raised",
    )
    low_daily_volume: int = Field(
        default=50,
        description="Fewer new drops than this in 24h raises a warning",
    )
    error_sources_warning: int = Field(
        default=5,
        description="Sources in error above which a warning is raised",
    )

    # ── Poll hints ───────────────────────────────────────────
    poll_active_seconds: int = Field(
        default=5,
        ge=1,
        description="Suggested poll interval while any source run is live",
    )
    poll_idle_seconds: int = Field(
        default=60,
        ge=1,
        description="Suggested poll interval when nothing is running",
    )
