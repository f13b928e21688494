"""Manual ingestion: submit one URL, then poll its queue item."""

import structlog
from fastapi import APIRouter, Depends, HTTPException
from starlette.requests import Request

from dropfeed.api.auth import verify_api_key
from dropfeed.api.dependencies import get_queue_intake, get_queue_repository
from dropfeed.api.models import ErrorResponse, IngestRequest, IngestResponse, QueueItemResponse
from dropfeed.api.rate_limit import limiter
from dropfeed.config.settings import get_settings as _get_settings
from dropfeed.errors import InvalidURL
from dropfeed.queue.intake import QueueIntake
from dropfeed.queue.repository import IngestionQueueRepository
from dropfeed.queue.schemas import QueueItem

logger = structlog.get_logger(__name__)
router = APIRouter()

# Statuses after which a polling client stops.
_FINISHED_STATUSES = frozenset({"done", "error", "failed"})


def _item_to_response(item: QueueItem) -> QueueItemResponse:
    return QueueItemResponse(
        id=item.id,
        url=item.url,
        status=item.status,
        kind=item.kind,
        tries=item.tries,
        error_message=item.error_message,
        source_id=item.source_id,
        source_label=item.source_label,
        created_at=item.created_at.isoformat() if item.created_at else None,
        updated_at=item.updated_at.isoformat() if item.updated_at else None,
        finished=item.status in _FINISHED_STATUSES,
    )


@router.post(
    "/ingest",
    response_model=IngestResponse,
    responses={401: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
    summary="Submit a URL for ingestion",
)
@limiter.limit(lambda: _get_settings().rate_limit_default)
async def ingest_url(
    request: Request,
    body: IngestRequest,
    api_key: str = Depends(verify_api_key),
    intake: QueueIntake = Depends(get_queue_intake),
) -> IngestResponse:
    """Normalize, check drops, then enqueue.

    ``exists`` means the URL already is a drop; ``in_queue`` means a queue
    row exists (poll it with ``GET /ingest/{queue_id}``).
    """
    result = await intake.submit(body.url, source_label=body.source_label, notes=body.notes)
    if result.status == "invalid":
        raise InvalidURL(body.url, result.error or "invalid URL")

    logger.info(
        "Manual ingest",
        status=result.status,
        url=result.normalized_url,
        queue_id=result.queue_id,
        drop_id=result.drop_id,
    )
    return IngestResponse(**result.to_dict())


@router.get(
    "/ingest/{queue_id}",
    response_model=QueueItemResponse,
    responses={401: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Poll a queue item",
)
async def get_queue_item(
    queue_id: int,
    api_key: str = Depends(verify_api_key),
    queue: IngestionQueueRepository = Depends(get_queue_repository),
) -> QueueItemResponse:
    item = await queue.get(queue_id)
    if item is None:
        raise HTTPException(status_code=404, detail=f"Queue item {queue_id} not found")
    return _item_to_response(item)
