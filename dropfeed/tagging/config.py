"""Configuration for the tagging capability client."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class TaggingConfig(BaseSettings):
    """Settings for reaching the external tagging capability.

    All settings can be overridden via ``TAGGING_*`` environment variables.
    """

    model_config = SettingsConfigDict(
        env_prefix="TAGGING_",
        case_sensitive=False,
        extra="ignore",
    )

    endpoint_url: str = Field(
        default="http://localhost:8090/tag",
        description="POST endpoint of the tagging capability",
    )
    api_key: str | None = Field(
        default=None,
        description="Bearer token sent to the tagging capability",
    )
    timeout_seconds: float = Field(default=30.0, gt=0.0)
    max_text_chars: int = Field(
        default=4000,
        ge=200,
        description="Text sent for tagging is truncated to this length",
    )
    default_max_l3: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Fallback for the max_l3 parameter when the store has none",
    )
    params_cache_ttl_seconds: int = Field(default=60, ge=0)
    retag_batch_size: int = Field(default=25, ge=1, le=500)
