"""
WebSocket Tests
"""

import httpx
import pytest
from fastapi.testclient import TestClient
from jose import jwt
from starlette.websockets import WebSocketDisconnect

from companion.core.config import settings
from companion.live.orchestrator import SessionOrchestrator
from companion.live.ws.publisher import SessionEventPublisher
from companion.main import create_app
from companion.services.audio.catalogs.freesound import FreesoundClient
from companion.services.audio.catalogs.jamendo import JamendoClient
from companion.services.audio.catalogs.tabletop import TabletopCatalog
from tests.fakes import FakeLLM


def _token(user_id: str) -> str:
    return jwt.encode({"sub": user_id}, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


@pytest.fixture
def ws_client():
    orchestrator = SessionOrchestrator(
        llm=FakeLLM(),
        tabletop=TabletopCatalog(
            url="https://tta.test/data",
            transport=httpx.MockTransport(lambda request: httpx.Response(503)),
        ),
        jamendo=JamendoClient(client_id=""),
        freesound=FreesoundClient(api_key=""),
        publisher=SessionEventPublisher(enabled=False),
    )
    with TestClient(create_app(orchestrator)) as client:
        yield client


def test_websocket_rejects_invalid_token(ws_client):
    with pytest.raises(WebSocketDisconnect) as exc:
        with ws_client.websocket_connect("/api/v1/ws/session?token=not-a-jwt") as websocket:
            websocket.receive_json()
    assert exc.value.code == 1008


def test_websocket_connected_then_commands(ws_client):
    with ws_client.websocket_connect(f"/api/v1/ws/session?token={_token('user-1')}") as websocket:
        connected = websocket.receive_json()
        assert connected["event"] == "connected"
        assert connected["data"]["userId"] == "user-1"

        websocket.send_json({"event": "session:dance", "data": {}})
        assert websocket.receive_json() == {"event": "error", "data": {"message": "Unknown event: session:dance"}}

        websocket.send_json({"event": "audio:manual-trigger", "data": {"mappingId": "bell"}})
        assert websocket.receive_json() == {
            "event": "audio:trigger",
            "data": {"mappingId": "bell", "action": "play", "manual": True},
        }

        websocket.send_text("{broken")
        assert websocket.receive_json()["data"]["message"] == "Invalid JSON"

        websocket.send_bytes(b"\x00\x00")
        websocket.send_json({"event": "auto-audio:get-settings", "data": {}})
        settings_event = websocket.receive_json()
        assert settings_event["event"] == "auto-audio:settings-updated"
        assert settings_event["data"]["apiStatus"]["freesound"] is False
