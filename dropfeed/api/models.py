"""
Request and response models for the dropfeed API.
"""

from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator


class ErrorResponse(BaseModel):
    """Response model for errors."""

    detail: str = Field(..., description="Error message")
    error_type: str = Field(default="error", description="Error type")


# Health models


class ComponentHealth(BaseModel):
    status: str = Field(..., description="healthy or unhealthy")
    latency_ms: float | None = None
    details: dict[str, Any] = Field(default_factory=dict)


class HealthResponse(BaseModel):
    """Response model for health check."""

    status: str = Field(
        ...,
        description="Overall service status: healthy, degraded, or unhealthy",
    )
    components: dict[str, ComponentHealth] = Field(default_factory=dict)
    version: str = "0.1.0"


# Source models

SourceType = Literal["rss", "website", "youtube"]


class SourceItem(BaseModel):
    id: int
    name: str
    homepage_url: str
    feed_url: str | None = None
    type: str
    status: str
    official: bool = False
    priority_flag: bool = False
    consecutive_errors: int = 0
    last_fetched_at: str | None = None
    last_error: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


class SourcesListResponse(BaseModel):
    sources: list[SourceItem]
    total: int
    has_more: bool = False
    latency_ms: float = 0.0


class CreateSourceRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    homepage_url: str = Field(..., min_length=1, max_length=2048)
    feed_url: str | None = Field(default=None, max_length=2048)
    type: SourceType = "rss"
    official: bool = False


class SourceIdsRequest(BaseModel):
    """Accepts a single ``source_id`` or a ``source_ids`` list."""

    source_id: int | None = None
    source_ids: list[int] | None = Field(default=None, max_length=200)

    @model_validator(mode="after")
    def _require_ids(self) -> "SourceIdsRequest":
        if self.source_id is None and not self.source_ids:
            raise ValueError("Provide source_id or source_ids")
        return self

    @property
    def ids(self) -> list[int]:
        ids = list(self.source_ids or [])
        if self.source_id is not None:
            ids.insert(0, self.source_id)
        return list(dict.fromkeys(ids))


class PrioritizeResponse(BaseModel):
    requested: list[int]
    flagged: list[int]


class RunOutcomeItem(BaseModel):
    source_id: int
    status: str = Field(..., description="started, success, error, conflict or not_found")
    items_ingested: int = 0
    error: str | None = None


class RunNowResponse(BaseModel):
    outcomes: list[RunOutcomeItem]


# Ingest models


class IngestRequest(BaseModel):
    url: str = Field(..., min_length=1, max_length=4096)
    source_label: str | None = Field(default=None, max_length=200)
    notes: str | None = Field(default=None, max_length=2000)


class IngestResponse(BaseModel):
    status: str = Field(..., description="exists, queued, in_queue or invalid")
    normalized_url: str | None = None
    queue_id: int | None = None
    drop_id: int | None = None
    queue_status: str | None = None
    error: str | None = None


class QueueItemResponse(BaseModel):
    id: int
    url: str
    status: str
    kind: str
    tries: int
    error_message: str | None = None
    source_id: int | None = None
    source_label: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    finished: bool = Field(
        default=False,
        description="True once the item reached done, error or failed; clients stop polling",
    )


# Tagging models


class TaggingParamItem(BaseModel):
    key: str
    value: str
    updated_at: str | None = None


class TaggingParamsResponse(BaseModel):
    params: list[TaggingParamItem]


class SetTaggingParamRequest(BaseModel):
    value: str = Field(..., max_length=10_000)


# Feed models


class FeedItem(BaseModel):
    id: int | None
    title: str
    url: str
    summary: str = ""
    image_url: str | None = None
    type: str
    tags: list[str] = Field(default_factory=list)
    source_id: int | None = None
    sponsored: bool = False
    published_at: str
    score: float
    reason_for_ranking: str
    components: dict[str, float] = Field(default_factory=dict)


class FeedResponse(BaseModel):
    user_id: str
    items: list[FeedItem]
    tier: str
    total_candidates: int
    constraints_applied: dict[str, Any] = Field(default_factory=dict)
    from_cache: bool = False
    latency_ms: float = 0.0


# Preference and engagement models


class PreferenceRequest(BaseModel):
    selected_topic_ids: list[int] = Field(default_factory=list, max_length=100)
    selected_language_ids: list[int] = Field(default_factory=list, max_length=3)


class PreferenceResponse(BaseModel):
    user_id: str
    selected_topic_ids: list[int]
    selected_language_ids: list[int]
    updated_at: str | None = None


class EngagementRequest(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=200)
    drop_id: int
    action: Literal["like", "dislike", "save", "dismiss", "open"]


class EngagementResponse(BaseModel):
    id: int | None
    user_id: str
    drop_id: int
    action: str
    created_at: str


# Admin models


class SweepResponse(BaseModel):
    requeued: int
    requeued_ids: list[int] = Field(default_factory=list)
    released_stale: int = 0
    released_ids: list[int] = Field(default_factory=list)


class ClearErrorsRequest(BaseModel):
    item_ids: list[int] | None = Field(default=None, max_length=1000)
    force: bool = False
    limit: int = Field(default=1000, ge=1, le=10_000)


class ClearErrorsResponse(BaseModel):
    examined: int
    cleared: int
    kept: int
    reasons: dict[str, int] = Field(default_factory=dict)
    cleared_ids: list[int] = Field(default_factory=list)


class ReleaseStaleRunsResponse(BaseModel):
    released: int
    source_ids: list[int] = Field(default_factory=list)


class RepairPassRequest(BaseModel):
    limit: int = Field(default=50, ge=1, le=500)


class RepairPassResponse(BaseModel):
    examined: int
    updated: int
    skipped: int
    failed: int
    errors: list[str] = Field(default_factory=list)
    stopped_early: bool = False
