"""
Administrative pipeline actions.

Every action is an explicit bulk transition: it is logged with counts,
counted in ``dropfeed_admin_actions_total`` and returns what it changed.
"""

from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException
from starlette.requests import Request

from dropfeed.api.auth import verify_api_key
from dropfeed.api.dependencies import (
    get_drop_repository,
    get_event_publisher,
    get_queue_maintenance,
    get_queue_repository,
    get_retag_worker,
    get_scheduler,
    get_youtube_reprocessor,
)
from dropfeed.api.models import (
    ClearErrorsRequest,
    ClearErrorsResponse,
    ErrorResponse,
    QueueItemResponse,
    ReleaseStaleRunsResponse,
    RepairPassRequest,
    RepairPassResponse,
    SweepResponse,
)
from dropfeed.api.rate_limit import limiter
from dropfeed.api.routes.ingest import _item_to_response
from dropfeed.config.settings import get_settings as _get_settings
from dropfeed.drops.repository import DropRepository
from dropfeed.observability.metrics import get_metrics
from dropfeed.queue.maintenance import QueueMaintenance
from dropfeed.queue.repository import IngestionQueueRepository
from dropfeed.scheduler.service import SourceScheduler
from dropfeed.status.broadcaster import StatusBroadcaster
from dropfeed.workers.reprocess import RetagWorker, YouTubeReprocessor

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/admin")


@router.post(
    "/queue/sweep",
    response_model=SweepResponse,
    responses={401: {"model": ErrorResponse}},
    summary="Requeue retryable errors and release stale claims",
)
@limiter.limit(lambda: _get_settings().rate_limit_admin)
async def sweep_queue(
    request: Request,
    api_key: str = Depends(verify_api_key),
    maintenance: QueueMaintenance = Depends(get_queue_maintenance),
) -> SweepResponse:
    released = await maintenance.release_stale_claims()
    requeued = await maintenance.sweep()
    get_metrics().record_admin_action("sweep", len(requeued))
    logger.info("Admin sweep", requeued=len(requeued), released_stale=len(released))
    return SweepResponse(
        requeued=len(requeued),
        requeued_ids=requeued,
        released_stale=len(released),
        released_ids=released,
    )


@router.post(
    "/queue/clear-errors",
    response_model=ClearErrorsResponse,
    responses={401: {"model": ErrorResponse}},
    summary="Move unrecoverable error rows to failed",
)
@limiter.limit(lambda: _get_settings().rate_limit_admin)
async def clear_errors(
    request: Request,
    body: ClearErrorsRequest | None = None,
    api_key: str = Depends(verify_api_key),
    maintenance: QueueMaintenance = Depends(get_queue_maintenance),
    publisher: Any = Depends(get_event_publisher),
) -> ClearErrorsResponse:
    body = body or ClearErrorsRequest()
    result = await maintenance.clear_errors(
        item_ids=body.item_ids, force=body.force, limit=body.limit
    )
    get_metrics().record_admin_action("clear_errors", result.cleared)
    if result.cleared:
        await StatusBroadcaster.publish(
            publisher,
            "queue_cleared",
            {"cleared": result.cleared, "reasons": result.reasons, "forced": body.force},
        )
    return ClearErrorsResponse(
        examined=result.examined,
        cleared=result.cleared,
        kept=result.kept,
        reasons=result.reasons,
        cleared_ids=result.cleared_ids,
    )


@router.post(
    "/queue/{item_id}/retry",
    response_model=QueueItemResponse,
    responses={401: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Operator retry of one queue item",
)
@limiter.limit(lambda: _get_settings().rate_limit_admin)
async def retry_item(
    request: Request,
    item_id: int,
    api_key: str = Depends(verify_api_key),
    queue: IngestionQueueRepository = Depends(get_queue_repository),
) -> QueueItemResponse:
    """error, failed or done → pending with ``tries += 1``."""
    item = await queue.retry(item_id)
    if item is None:
        raise HTTPException(
            status_code=404,
            detail=f"Queue item {item_id} not found or not retryable",
        )
    get_metrics().record_admin_action("retry", 1)
    logger.info("Admin retry", item_id=item_id, tries=item.tries)
    return _item_to_response(item)


@router.post(
    "/runs/release-stale",
    response_model=ReleaseStaleRunsResponse,
    responses={401: {"model": ErrorResponse}},
    summary="Fail source runs stuck in running",
)
@limiter.limit(lambda: _get_settings().rate_limit_admin)
async def release_stale_runs(
    request: Request,
    api_key: str = Depends(verify_api_key),
    scheduler: SourceScheduler = Depends(get_scheduler),
) -> ReleaseStaleRunsResponse:
    released = await scheduler.mark_stale_runs()
    get_metrics().record_admin_action("release_stale_runs", len(released))
    logger.info("Admin released stale runs", count=len(released), source_ids=released)
    return ReleaseStaleRunsResponse(released=len(released), source_ids=released)


@router.post(
    "/youtube/reprocess",
    response_model=RepairPassResponse,
    responses={401: {"model": ErrorResponse}},
    summary="Re-enrich video drops with placeholder metadata",
)
@limiter.limit(lambda: _get_settings().rate_limit_admin)
async def reprocess_youtube(
    request: Request,
    body: RepairPassRequest | None = None,
    api_key: str = Depends(verify_api_key),
    reprocessor: YouTubeReprocessor = Depends(get_youtube_reprocessor),
) -> RepairPassResponse:
    body = body or RepairPassRequest()
    result = await reprocessor.run(limit=body.limit)
    get_metrics().record_admin_action("youtube_reprocess", result.updated)
    return RepairPassResponse(**result.to_dict())


@router.post(
    "/drops/retag",
    response_model=RepairPassResponse,
    responses={401: {"model": ErrorResponse}},
    summary="Tag drops awaiting (re-)tagging",
)
@limiter.limit(lambda: _get_settings().rate_limit_admin)
async def retag_drops(
    request: Request,
    body: RepairPassRequest | None = None,
    api_key: str = Depends(verify_api_key),
    worker: RetagWorker = Depends(get_retag_worker),
) -> RepairPassResponse:
    body = body or RepairPassRequest()
    result = await worker.run_once(limit=body.limit)
    get_metrics().record_admin_action("retag", result.updated)
    return RepairPassResponse(**result.to_dict())


@router.delete(
    "/drops/{drop_id}",
    responses={401: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Soft-delete a drop",
)
@limiter.limit(lambda: _get_settings().rate_limit_admin)
async def delete_drop(
    request: Request,
    drop_id: int,
    api_key: str = Depends(verify_api_key),
    drops: DropRepository = Depends(get_drop_repository),
) -> dict[str, Any]:
    """Adds the ``deleted`` tag; the row stays and leaves every feed."""
    if not await drops.mark_deleted(drop_id):
        raise HTTPException(status_code=404, detail=f"Drop {drop_id} not found or already deleted")
    get_metrics().record_admin_action("delete_drop", 1)
    logger.info("Admin deleted drop", drop_id=drop_id)
    return {"drop_id": drop_id, "deleted": True}
