"""Tests for the status WebSocket."""

from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from dropfeed.api.app import create_app
from dropfeed.api.routes import ws_status
from dropfeed.api.routes.ws_status import parse_event_filter
from dropfeed.config.settings import Settings
from dropfeed.status.broadcaster import StatusBroadcaster


@pytest.fixture
def broadcaster():
    instance = StatusBroadcaster(max_connections=1)
    ws_status.set_broadcaster(instance)
    yield instance
    ws_status.set_broadcaster(None)


@pytest.fixture
def ws_enabled():
    with patch(
        "dropfeed.api.routes.ws_status.get_settings",
        return_value=Settings(ws_status_enabled=True),
    ):
        yield


class TestParseEventFilter:
    def test_empty(self):
        assert parse_event_filter(None) is None
        assert parse_event_filter("") is None

    def test_types(self):
        assert parse_event_filter("run_started, item_failed") == {"run_started", "item_failed"}

    def test_unknown(self):
        with pytest.raises(ValueError, match="Unknown event types: bogus"):
            parse_event_filter("run_started,bogus")


class TestWebSocket:
    def test_disabled(self):
        client = TestClient(create_app())
        with pytest.raises(WebSocketDisconnect) as exc:
            with client.websocket_connect("/ws/status"):
                pass
        assert exc.value.code == 1008

    def test_no_broadcaster(self, ws_enabled):
        ws_status.set_broadcaster(None)
        client = TestClient(create_app())
        with pytest.raises(WebSocketDisconnect) as exc:
            with client.websocket_connect("/ws/status"):
                pass
        assert exc.value.code == 1011

    def test_bad_filter(self, ws_enabled, broadcaster):
        client = TestClient(create_app())
        with pytest.raises(WebSocketDisconnect) as exc:
            with client.websocket_connect("/ws/status?events=bogus"):
                pass
        assert exc.value.code == 1008

    def test_ping_pong_and_registration(self, ws_enabled, broadcaster):
        client = TestClient(create_app())
        with client.websocket_connect("/ws/status?events=run_finished&source_id=3") as ws:
            ws.send_text('{"type": "ping"}')
            assert ws.receive_json() == {"type": "pong"}
            assert broadcaster.active_connections == 1
        client.close()
