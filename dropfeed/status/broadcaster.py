"""Status-change push channel over Redis pub/sub and WebSockets.

Schedulers and workers publish small events (``run_started``,
``run_finished``, ``item_failed``, ``queue_cleared``) to the
``dropfeed:status`` channel. Every API process runs one subscriber that
fans events out to its connected ``/ws/status`` clients, so operators see
changes without polling and publishers never know who is listening.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from starlette.websockets import WebSocket

logger = logging.getLogger(__name__)

CHANNEL_NAME = "dropfeed:status"

VALID_EVENT_TYPES: frozenset[str] = frozenset({
    "run_started",
    "run_finished",
    "item_failed",
    "queue_cleared",
})


@dataclass
class StatusClient:
    """A connected WebSocket client and the events it asked for."""

    ws: WebSocket
    event_types: frozenset[str] | None = None
    source_id: int | None = None
    connected_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    def wants(self, event_type: str | None, source_id: int | None) -> bool:
        if self.event_types and event_type not in self.event_types:
            return False
        if self.source_id is not None and self.source_id != source_id:
            return False
        return True


def build_event(event_type: str, data: dict[str, Any]) -> dict[str, Any]:
    """Envelope for one status event.

    Raises:
        ValueError: Unknown event type.
    """
    if event_type not in VALID_EVENT_TYPES:
        raise ValueError(
            f"Invalid status event {event_type!r}. "
            f"Must be one of: {sorted(VALID_EVENT_TYPES)}"
        )
    return {
        "type": event_type,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "data": data,
    }


class StatusBroadcaster:
    """Owns the WebSocket clients and the Redis subscription of one API process.

    Lifecycle:
        1. ``start(redis_client)`` subscribes and spawns listener/heartbeat tasks
        2. ``connect(ws, ...)`` / ``disconnect(ws)`` manage clients
        3. ``stop()`` cancels the tasks and closes the subscription
    """

    def __init__(
        self,
        max_connections: int = 100,
        heartbeat_interval: int = 30,
    ) -> None:
        self._max_connections = max_connections
        self._heartbeat_interval = heartbeat_interval
        self._clients: dict[WebSocket, StatusClient] = {}
        self._listener_task: asyncio.Task | None = None
        self._heartbeat_task: asyncio.Task | None = None
        self._pubsub: Any | None = None
        self._running = False

    @property
    def active_connections(self) -> int:
        return len(self._clients)

    @property
    def is_running(self) -> bool:
        return self._running

    def connect(
        self,
        ws: WebSocket,
        event_types: set[str] | None = None,
        source_id: int | None = None,
    ) -> bool:
        """Register a client. Returns False when the connection cap is reached."""
        if len(self._clients) >= self._max_connections:
            return False

        self._clients[ws] = StatusClient(
            ws=ws,
            event_types=frozenset(event_types) if event_types else None,
            source_id=source_id,
        )
        logger.info(
            "Status client connected (total=%d, events=%s, source_id=%s)",
            len(self._clients), sorted(event_types or []), source_id,
        )
        return True

    def disconnect(self, ws: WebSocket) -> None:
        if self._clients.pop(ws, None) is not None:
            logger.info("Status client disconnected (total=%d)", len(self._clients))

    async def start(self, redis_client: Any) -> None:
        if self._running:
            return

        self._running = True
        try:
            self._pubsub = redis_client.pubsub()
            await self._pubsub.subscribe(CHANNEL_NAME)
        except Exception as e:
            self._running = False
            self._pubsub = None
            logger.error("Failed to start StatusBroadcaster: %s", e)
            return

        self._listener_task = asyncio.create_task(
            self._listen(), name="status-broadcaster-listener",
        )
        self._heartbeat_task = asyncio.create_task(
            self._send_heartbeats(), name="status-broadcaster-heartbeat",
        )
        logger.info(
            "StatusBroadcaster started (channel=%s, heartbeat=%ds)",
            CHANNEL_NAME, self._heartbeat_interval,
        )

    async def stop(self) -> None:
        self._running = False

        for task in (self._listener_task, self._heartbeat_task):
            if task is not None:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._listener_task = None
        self._heartbeat_task = None

        if self._pubsub is not None:
            try:
                await self._pubsub.unsubscribe(CHANNEL_NAME)
                await self._pubsub.close()
            except Exception as e:
                logger.warning("Error closing status pub/sub: %s", e)
            self._pubsub = None

        self._clients.clear()
        logger.info("StatusBroadcaster stopped")

    @staticmethod
    async def publish(redis_client: Any, event_type: str, data: dict[str, Any]) -> bool:
        """Publish one event. A None client or a Redis error returns False.

        Publishing is best effort; pipeline state is always persisted
        before the event goes out.
        """
        if redis_client is None:
            return False
        payload = json.dumps(build_event(event_type, data), default=str)
        try:
            await redis_client.publish(CHANNEL_NAME, payload)
            return True
        except Exception as e:
            logger.warning("Failed to publish status event %s: %s", event_type, e)
            return False

    async def _listen(self) -> None:
        try:
            while self._running:
                try:
                    message = await self._pubsub.get_message(
                        ignore_subscribe_messages=True, timeout=1.0,
                    )
                    if message is not None and message["type"] == "message":
                        await self.dispatch(message["data"])
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    logger.warning("Error reading status message: %s", e)
                    await asyncio.sleep(1.0)
        except asyncio.CancelledError:
            pass

    async def dispatch(self, raw_data: str | bytes) -> int:
        """Send one raw channel message to matching clients. Returns sends."""
        try:
            if isinstance(raw_data, bytes):
                raw_data = raw_data.decode("utf-8")
            payload = json.loads(raw_data)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning("Invalid status message: %s", e)
            return 0

        event_type = payload.get("type")
        source_id = (payload.get("data") or {}).get("source_id")
        targets = [
            ws for ws, client in self._clients.items()
            if client.wants(event_type, source_id)
        ]
        return await self._fan_out(targets, json.dumps(payload))

    async def _fan_out(self, targets: list[WebSocket], text: str) -> int:
        """Send ``text`` to each target; clients that fail are dropped."""
        sent = 0
        for ws in targets:
            try:
                await ws.send_text(text)
                sent += 1
            except Exception:
                self.disconnect(ws)
        return sent

    async def _send_heartbeats(self) -> None:
        try:
            while self._running:
                await asyncio.sleep(self._heartbeat_interval)
                if not self._clients:
                    continue

                heartbeat = json.dumps({
                    "type": "heartbeat",
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                    "clients": len(self._clients),
                })
                await self._fan_out(list(self._clients), heartbeat)
        except asyncio.CancelledError:
            pass
