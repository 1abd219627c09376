"""
Live session WebSocket

Text frames carry ``{"event": ..., "data": ...}`` control messages; binary
frames are raw 16 kHz mono linear16 audio.
"""

import uuid
from functools import partial

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from companion.core import security
from companion.core.errors import AuthenticationError
from companion.core.logging import get_logger
from companion.live.events import ServerEvent, server_message
from companion.live.orchestrator import SessionOrchestrator
from companion.live.ws.manager import ConnectionManager

logger = get_logger(__name__)

router = APIRouter()


@router.websocket("/session")
async def live_session_endpoint(websocket: WebSocket, token: str = Query(...)):
    try:
        user_id = security.authenticate(token)
    except AuthenticationError as e:
        logger.warning(f"Rejected live session connection: {e.message}")
        await websocket.close(code=1008, reason=e.message)
        return

    orchestrator: SessionOrchestrator = websocket.app.state.orchestrator
    manager: ConnectionManager = websocket.app.state.connections
    connection_id = str(uuid.uuid4())

    await manager.connect(connection_id, websocket)
    live = orchestrator.open(connection_id, user_id, partial(manager.send, connection_id))

    try:
        await manager.send(
            connection_id,
            server_message(ServerEvent.CONNECTED, {"connectionId": connection_id, "userId": user_id}),
        )
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            if message.get("bytes") is not None:
                await live.submit_audio(message["bytes"])
            elif message.get("text") is not None:
                await live.submit_message(message["text"])
    except WebSocketDisconnect:
        pass
    finally:
        await orchestrator.close(connection_id)
        await manager.disconnect(connection_id)
