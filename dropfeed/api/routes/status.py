"""Read-only pipeline status endpoints."""

from typing import Any

from fastapi import APIRouter, Depends

from dropfeed.api.auth import verify_api_key
from dropfeed.api.dependencies import get_status_service
from dropfeed.status.service import StatusService

router = APIRouter()


@router.get("/status", summary="Full status snapshot")
async def get_status(
    api_key: str = Depends(verify_api_key),
    service: StatusService = Depends(get_status_service),
) -> dict[str, Any]:
    """Runs, queue, coverage, alerts and ``recommended_poll_seconds``.

    Poll at ``recommended_poll_seconds``; it shortens while a run is live.
    """
    snapshot = await service.snapshot()
    return snapshot.to_dict()


@router.get("/status/sources", summary="Last run per source")
async def get_source_statuses(
    api_key: str = Depends(verify_api_key),
    service: StatusService = Depends(get_status_service),
) -> dict[str, Any]:
    entries = await service.source_statuses()
    return {
        "sources": {str(k): v.to_dict() for k, v in entries.items()},
        "running": sum(1 for e in entries.values() if e.status == "running"),
        "stale": sum(1 for e in entries.values() if e.stale),
    }


@router.get("/status/queue", summary="Queue counts by status")
async def get_queue_status(
    api_key: str = Depends(verify_api_key),
    service: StatusService = Depends(get_status_service),
) -> dict[str, Any]:
    return await service.queue_status()


@router.get("/status/coverage", summary="Tagging coverage")
async def get_coverage(
    api_key: str = Depends(verify_api_key),
    service: StatusService = Depends(get_status_service),
) -> dict[str, Any]:
    return await service.coverage()
