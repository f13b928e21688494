"""WebSocket endpoint for status-change events.

Clients connect to ``/ws/status`` and receive run and queue events as
JSON. Optional filters: ``events`` (comma-separated event types) and
``source_id``. Auth is the ``api_key`` query parameter since browsers
cannot set headers on the upgrade request.
"""

import json
import logging

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from dropfeed.api.auth import is_valid_api_key
from dropfeed.config.settings import get_settings
from dropfeed.status.broadcaster import VALID_EVENT_TYPES, StatusBroadcaster

logger = logging.getLogger(__name__)

router = APIRouter()

# Set during app lifespan.
_broadcaster: StatusBroadcaster | None = None


def set_broadcaster(broadcaster: StatusBroadcaster | None) -> None:
    global _broadcaster
    _broadcaster = broadcaster


def get_broadcaster() -> StatusBroadcaster | None:
    return _broadcaster


def parse_event_filter(raw: str | None) -> set[str] | None:
    """Parse ``events=a,b``. Raises ValueError on an unknown type."""
    if not raw:
        return None
    wanted = {e.strip() for e in raw.split(",") if e.strip()}
    unknown = wanted - VALID_EVENT_TYPES
    if unknown:
        raise ValueError(f"Unknown event types: {', '.join(sorted(unknown))}")
    return wanted or None


@router.websocket("/ws/status")
async def ws_status(
    ws: WebSocket,
    events: str | None = Query(default=None),
    source_id: int | None = Query(default=None),
    api_key: str | None = Query(default=None),
) -> None:
    if not get_settings().ws_status_enabled:
        await ws.close(code=1008, reason="Status WebSocket not enabled")
        return

    if not is_valid_api_key(api_key):
        await ws.close(code=1008, reason="Invalid or missing API key")
        return

    try:
        event_types = parse_event_filter(events)
    except ValueError as e:
        await ws.close(code=1008, reason=str(e))
        return

    broadcaster = _broadcaster
    if broadcaster is None:
        await ws.close(code=1011, reason="Broadcaster not available")
        return

    await ws.accept()
    if not broadcaster.connect(ws, event_types=event_types, source_id=source_id):
        await ws.close(code=1008, reason="Max connections reached")
        return

    try:
        while True:
            try:
                raw = await ws.receive_text()
            except WebSocketDisconnect:
                break
            try:
                msg = json.loads(raw)
            except json.JSONDecodeError:
                continue
            if isinstance(msg, dict) and msg.get("type") == "ping":
                await ws.send_text(json.dumps({"type": "pong"}))
    finally:
        broadcaster.disconnect(ws)
