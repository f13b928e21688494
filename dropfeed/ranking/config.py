"""Configuration for feed ranking."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class RankingConfig(BaseSettings):
    """Candidate window, component weights per tier, and assembly limits.

    All settings can be overridden via ``RANKING_*`` environment variables,
    e.g. ``RANKING_MATURE_SIMILARITY_WEIGHT=0.4``.
    """

    model_config = SettingsConfigDict(
        env_prefix="RANKING_",
        case_sensitive=False,
        extra="ignore",
    )

    # Candidates
    recency_window_days: int = Field(default=30, ge=1, le=365)
    candidate_limit: int = Field(default=500, ge=10, le=5000)
    default_limit: int = Field(default=10, ge=1, le=100)
    max_limit: int = Field(default=50, ge=1, le=200)

    # Catalog components
    recency_half_life_hours: float = Field(
        default=48.0,
        gt=0.0,
        description="Recency component halves every this many hours",
    )
    trust_fallback: float = Field(default=0.5, ge=0.0, le=1.0)
    popularity_fallback: float = Field(
        default=0.3,
        ge=0.0,
        le=1.0,
        description="Popularity assumed for drops without a view-based score",
    )
    similarity_fallback: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="Similarity used when no external score is supplied",
    )

    # Feedback
    events_limit: int = Field(default=200, ge=1, le=2000)
    feedback_scale: float = Field(
        default=3.0,
        gt=0.0,
        description="Raw feedback is divided by this before tanh squashing",
    )
    shared_tag_factor: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="Weight of an event matched by tags only (source match = 1.0)",
    )

    # Tiers by engagement event count
    cold_threshold: int = Field(default=10, ge=1)
    mature_threshold: int = Field(default=50, ge=2)

    cold_topic_weight: float = 0.45
    cold_catalog_weight: float = 0.40
    cold_similarity_weight: float = 0.10
    cold_feedback_weight: float = 0.05

    warm_topic_weight: float = 0.30
    warm_catalog_weight: float = 0.30
    warm_similarity_weight: float = 0.20
    warm_feedback_weight: float = 0.20

    mature_topic_weight: float = 0.20
    mature_catalog_weight: float = 0.20
    mature_similarity_weight: float = 0.30
    mature_feedback_weight: float = 0.30

    # Assembly
    video_min_score: float = Field(
        default=0.25,
        ge=0.0,
        le=1.0,
        description="A video scoring at least this is guaranteed a slot",
    )
    max_per_source: int = Field(default=2, ge=1)
    sponsored_slot: int | None = Field(
        default=None,
        ge=0,
        description="Fixed 0-based position for the sponsored item; unset appends it only when space remains",
    )

    # Cache
    cache_enabled: bool = True
    cache_ttl_seconds: int = Field(default=7200, ge=0)
    cache_key_prefix: str = "dropfeed:feed:"

    def weights_for(self, tier: str) -> dict[str, float]:
        """Component weights for ``tier`` (cold, warm, mature)."""
        return {
            "topic_match": getattr(self, f"{tier}_topic_weight"),
            "catalog": getattr(self, f"{tier}_catalog_weight"),
            "similarity": getattr(self, f"{tier}_similarity_weight"),
            "feedback": getattr(self, f"{tier}_feedback_weight"),
        }

    def tier_for(self, event_count: int) -> str:
        if event_count < self.cold_threshold:
            return "cold"
        if event_count >= self.mature_threshold:
            return "mature"
        return "warm"
