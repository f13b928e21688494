"""Source registry endpoints: CRUD, prioritize and run-now."""

import time

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from starlette.requests import Request

from dropfeed.api.auth import verify_api_key
from dropfeed.api.dependencies import get_scheduler, get_sources_service
from dropfeed.api.models import (
    CreateSourceRequest,
    ErrorResponse,
    PrioritizeResponse,
    RunNowResponse,
    RunOutcomeItem,
    SourceIdsRequest,
    SourceItem,
    SourcesListResponse,
)
from dropfeed.api.rate_limit import limiter
from dropfeed.config.settings import get_settings as _get_settings
from dropfeed.errors import ConcurrentRunConflict
from dropfeed.scheduler.service import SourceScheduler
from dropfeed.sources.schemas import Source
from dropfeed.sources.service import SourcesService

logger = structlog.get_logger(__name__)
router = APIRouter()


def _source_to_item(s: Source) -> SourceItem:
    return SourceItem(
        id=s.id,
        name=s.name,
        homepage_url=s.homepage_url,
        feed_url=s.feed_url,
        type=s.type,
        status=s.status,
        official=s.official,
        priority_flag=s.priority_flag,
        consecutive_errors=s.consecutive_errors,
        last_fetched_at=s.last_fetched_at.isoformat() if s.last_fetched_at else None,
        last_error=s.last_error,
        created_at=s.created_at.isoformat() if s.created_at else None,
        updated_at=s.updated_at.isoformat() if s.updated_at else None,
    )


@router.get(
    "/sources",
    response_model=SourcesListResponse,
    responses={401: {"model": ErrorResponse}},
    summary="List sources with filters",
)
@limiter.limit(lambda: _get_settings().rate_limit_default)
async def list_sources(
    request: Request,
    type: str | None = Query(default=None, description="rss, website or youtube"),
    source_status: str | None = Query(default=None, alias="status"),
    search: str | None = Query(default=None, description="Search name/homepage"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    api_key: str = Depends(verify_api_key),
    service: SourcesService = Depends(get_sources_service),
) -> SourcesListResponse:
    start = time.perf_counter()
    sources, total = await service.repository.list_sources(
        type=type,
        status=source_status,
        search=search,
        limit=limit,
        offset=offset,
    )
    return SourcesListResponse(
        sources=[_source_to_item(s) for s in sources],
        total=total,
        has_more=(offset + limit) < total,
        latency_ms=round((time.perf_counter() - start) * 1000, 2),
    )


@router.post(
    "/sources",
    response_model=SourceItem,
    status_code=status.HTTP_201_CREATED,
    responses={401: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
    summary="Create a source",
)
@limiter.limit(lambda: _get_settings().rate_limit_admin)
async def create_source(
    request: Request,
    body: CreateSourceRequest,
    api_key: str = Depends(verify_api_key),
    service: SourcesService = Depends(get_sources_service),
) -> SourceItem:
    try:
        source = Source(
            name=body.name,
            homepage_url=body.homepage_url,
            feed_url=body.feed_url,
            type=body.type,
            official=body.official,
        )
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    created = await service.repository.create(source)
    service.invalidate_cache()
    logger.info("Source created", source_id=created.id, name=created.name, type=created.type)
    return _source_to_item(created)


@router.get(
    "/sources/{source_id}",
    response_model=SourceItem,
    responses={401: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Get a source",
)
async def get_source(
    source_id: int,
    api_key: str = Depends(verify_api_key),
    service: SourcesService = Depends(get_sources_service),
) -> SourceItem:
    source = await service.repository.get(source_id)
    if source is None:
        raise HTTPException(status_code=404, detail=f"Source {source_id} not found")
    return _source_to_item(source)


@router.delete(
    "/sources/{source_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={401: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Deactivate a source",
)
@limiter.limit(lambda: _get_settings().rate_limit_admin)
async def delete_source(
    request: Request,
    source_id: int,
    api_key: str = Depends(verify_api_key),
    service: SourcesService = Depends(get_sources_service),
) -> None:
    """Soft delete: the source moves to ``inactive`` and is no longer polled."""
    if not await service.repository.deactivate(source_id):
        raise HTTPException(status_code=404, detail=f"Source {source_id} not found or inactive")
    service.invalidate_cache()
    logger.info("Source deactivated", source_id=source_id)


@router.post(
    "/sources/prioritize",
    response_model=PrioritizeResponse,
    responses={401: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
    summary="Include sources in the next scheduler tick",
)
@limiter.limit(lambda: _get_settings().rate_limit_admin)
async def prioritize_sources(
    request: Request,
    body: SourceIdsRequest,
    api_key: str = Depends(verify_api_key),
    scheduler: SourceScheduler = Depends(get_scheduler),
) -> PrioritizeResponse:
    flagged = await scheduler.prioritize(body.ids)
    logger.info("Sources prioritized", requested=body.ids, flagged=flagged)
    return PrioritizeResponse(requested=body.ids, flagged=flagged)


@router.post(
    "/sources/run-now",
    response_model=RunNowResponse,
    responses={
        401: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
    },
    summary="Run sources immediately",
)
@limiter.limit(lambda: _get_settings().rate_limit_admin)
async def run_sources_now(
    request: Request,
    body: SourceIdsRequest,
    wait: bool = Query(default=False, description="Block until the runs finish"),
    api_key: str = Depends(verify_api_key),
    scheduler: SourceScheduler = Depends(get_scheduler),
) -> RunNowResponse:
    """Per-source outcomes; 409 only when every requested source is already running."""
    outcomes = await scheduler.run_now(body.ids, wait=wait)
    if outcomes and all(o.status == "conflict" for o in outcomes):
        raise ConcurrentRunConflict(outcomes[0].source_id)

    logger.info(
        "Run-now requested",
        source_ids=body.ids,
        outcomes={o.source_id: o.status for o in outcomes},
    )
    return RunNowResponse(outcomes=[RunOutcomeItem(**o.to_dict()) for o in outcomes])
