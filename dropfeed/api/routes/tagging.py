"""Tagging parameter store endpoints."""

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from starlette.requests import Request

from dropfeed.api.auth import verify_api_key
from dropfeed.api.dependencies import get_tagging_params_repository
from dropfeed.api.models import (
    ErrorResponse,
    SetTaggingParamRequest,
    TaggingParamItem,
    TaggingParamsResponse,
)
from dropfeed.api.rate_limit import limiter
from dropfeed.config.settings import get_settings as _get_settings
from dropfeed.tagging.repository import TaggingParamsRepository
from dropfeed.tagging.schemas import TaggingParam

logger = structlog.get_logger(__name__)
router = APIRouter()


def _param_to_item(param: TaggingParam) -> TaggingParamItem:
    return TaggingParamItem(
        key=param.key,
        value=param.value,
        updated_at=param.updated_at.isoformat() if param.updated_at else None,
    )


@router.get(
    "/tagging/params",
    response_model=TaggingParamsResponse,
    responses={401: {"model": ErrorResponse}},
    summary="List tagging parameters",
)
async def list_params(
    api_key: str = Depends(verify_api_key),
    repo: TaggingParamsRepository = Depends(get_tagging_params_repository),
) -> TaggingParamsResponse:
    return TaggingParamsResponse(params=[_param_to_item(p) for p in await repo.list_params()])


@router.put(
    "/tagging/params/{key}",
    response_model=TaggingParamItem,
    responses={401: {"model": ErrorResponse}},
    summary="Create or replace a tagging parameter",
)
@limiter.limit(lambda: _get_settings().rate_limit_admin)
async def set_param(
    request: Request,
    key: str,
    body: SetTaggingParamRequest,
    api_key: str = Depends(verify_api_key),
    repo: TaggingParamsRepository = Depends(get_tagging_params_repository),
) -> TaggingParamItem:
    param = await repo.set(key, body.value)
    logger.info("Tagging parameter set", key=key)
    return _param_to_item(param)


@router.delete(
    "/tagging/params/{key}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={401: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Delete a tagging parameter",
)
@limiter.limit(lambda: _get_settings().rate_limit_admin)
async def delete_param(
    request: Request,
    key: str,
    api_key: str = Depends(verify_api_key),
    repo: TaggingParamsRepository = Depends(get_tagging_params_repository),
) -> None:
    if not await repo.delete(key):
        raise HTTPException(status_code=404, detail=f"Tagging parameter {key!r} not found")
    logger.info("Tagging parameter deleted", key=key)
