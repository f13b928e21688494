"""User preference endpoints (topic and language selection)."""

import structlog
from fastapi import APIRouter, Depends, HTTPException

from dropfeed.api.auth import verify_api_key
from dropfeed.api.dependencies import get_preference_repository, get_ranking_service
from dropfeed.api.models import ErrorResponse, PreferenceRequest, PreferenceResponse
from dropfeed.preferences.repository import PreferenceRepository
from dropfeed.preferences.schemas import UserPreference
from dropfeed.ranking.service import FeedRankingService

logger = structlog.get_logger(__name__)
router = APIRouter()


def _to_response(pref: UserPreference) -> PreferenceResponse:
    return PreferenceResponse(
        user_id=pref.user_id,
        selected_topic_ids=pref.selected_topic_ids,
        selected_language_ids=pref.selected_language_ids,
        updated_at=pref.updated_at.isoformat() if pref.updated_at else None,
    )


@router.get(
    "/preferences/{user_id}",
    response_model=PreferenceResponse,
    responses={401: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def get_preferences(
    user_id: str,
    api_key: str = Depends(verify_api_key),
    repo: PreferenceRepository = Depends(get_preference_repository),
) -> PreferenceResponse:
    pref = await repo.get(user_id)
    if pref is None:
        raise HTTPException(status_code=404, detail=f"No preferences for user {user_id}")
    return _to_response(pref)


@router.put(
    "/preferences/{user_id}",
    response_model=PreferenceResponse,
    responses={401: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def put_preferences(
    user_id: str,
    body: PreferenceRequest,
    api_key: str = Depends(verify_api_key),
    repo: PreferenceRepository = Depends(get_preference_repository),
    ranking: FeedRankingService = Depends(get_ranking_service),
) -> PreferenceResponse:
    """Replace the user's selection; cached feeds are dropped."""
    try:
        pref = UserPreference(
            user_id=user_id,
            selected_topic_ids=body.selected_topic_ids,
            selected_language_ids=body.selected_language_ids,
        )
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    saved = await repo.upsert(pref)
    await ranking.invalidate(user_id)
    logger.info(
        "Preferences updated",
        user_id=user_id,
        topics=len(saved.selected_topic_ids),
        languages=len(saved.selected_language_ids),
    )
    return _to_response(saved)
