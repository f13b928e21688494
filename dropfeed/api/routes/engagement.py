"""Engagement event endpoint."""

import asyncpg
import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from starlette.requests import Request

from dropfeed.api.auth import verify_api_key
from dropfeed.api.dependencies import get_engagement_repository, get_ranking_service
from dropfeed.api.models import EngagementRequest, EngagementResponse, ErrorResponse
from dropfeed.api.rate_limit import limiter
from dropfeed.config.settings import get_settings as _get_settings
from dropfeed.engagement.repository import EngagementRepository
from dropfeed.engagement.schemas import EngagementEvent
from dropfeed.ranking.service import FeedRankingService

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.post(
    "/engagement",
    response_model=EngagementResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
    },
    summary="Record an engagement event",
)
@limiter.limit(lambda: _get_settings().rate_limit_default)
async def record_engagement(
    request: Request,
    body: EngagementRequest,
    api_key: str = Depends(verify_api_key),
    repo: EngagementRepository = Depends(get_engagement_repository),
    ranking: FeedRankingService = Depends(get_ranking_service),
) -> EngagementResponse:
    """Append-only. Negative actions also drop the user's cached feeds."""
    try:
        event = await repo.create(
            EngagementEvent(user_id=body.user_id, drop_id=body.drop_id, action=body.action)
        )
    except asyncpg.ForeignKeyViolationError:
        raise HTTPException(status_code=404, detail=f"Drop {body.drop_id} not found")
    if event.is_negative:
        await ranking.invalidate(body.user_id)

    logger.info(
        "Engagement recorded",
        user_id=event.user_id,
        drop_id=event.drop_id,
        action=event.action,
    )
    return EngagementResponse(
        id=event.id,
        user_id=event.user_id,
        drop_id=event.drop_id,
        action=event.action,
        created_at=event.created_at.isoformat(),
    )
