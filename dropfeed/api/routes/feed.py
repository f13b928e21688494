"""Personalized feed endpoint."""

import time

import structlog
from fastapi import APIRouter, Depends, Query
from starlette.requests import Request

from dropfeed.api.auth import verify_api_key
from dropfeed.api.dependencies import get_ranking_service
from dropfeed.api.models import ErrorResponse, FeedItem, FeedResponse
from dropfeed.api.rate_limit import limiter
from dropfeed.config.settings import get_settings as _get_settings
from dropfeed.ranking.schemas import RankedDrop
from dropfeed.ranking.service import FeedRankingService

logger = structlog.get_logger(__name__)
router = APIRouter()


def _ranked_to_item(ranked: RankedDrop) -> FeedItem:
    drop = ranked.drop
    return FeedItem(
        id=drop.id,
        title=drop.title,
        url=drop.url,
        summary=drop.summary,
        image_url=drop.image_url,
        type=drop.type,
        tags=drop.tags,
        source_id=drop.source_id,
        sponsored=drop.sponsored,
        published_at=drop.published_at.isoformat(),
        score=round(ranked.score, 6),
        reason_for_ranking=ranked.reason_for_ranking,
        components={k: round(v, 6) for k, v in ranked.components.items()},
    )


@router.get(
    "/feed/{user_id}",
    response_model=FeedResponse,
    responses={401: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    summary="Ranked feed for a user",
)
@limiter.limit(lambda: _get_settings().rate_limit_feed)
async def get_feed(
    request: Request,
    user_id: str,
    limit: int | None = Query(default=None, ge=1, le=200),
    refresh: bool = Query(default=False, description="Bypass the cached feed"),
    api_key: str = Depends(verify_api_key),
    service: FeedRankingService = Depends(get_ranking_service),
) -> FeedResponse:
    """409 ``no_preferences`` when the user selected no topics."""
    start = time.perf_counter()
    result = await service.rank(user_id, limit=limit, refresh=refresh)
    return FeedResponse(
        user_id=user_id,
        items=[_ranked_to_item(r) for r in result.items],
        tier=result.tier,
        total_candidates=result.total_candidates,
        constraints_applied=result.constraints_applied,
        from_cache=result.from_cache,
        latency_ms=round((time.perf_counter() - start) * 1000, 2),
    )
