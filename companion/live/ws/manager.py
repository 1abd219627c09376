import asyncio
from typing import Any, Dict

from fastapi import WebSocket
from starlette.websockets import WebSocketDisconnect, WebSocketState

from companion.core.logging import get_logger

logger = get_logger(__name__)


class ConnectionManager:
    """
    Live session sockets keyed by connection id, with the table guarded
    against concurrent connect/disconnect.
    """

    def __init__(self):
        # connection_id -> WebSocket
        self.active_connections: Dict[str, WebSocket] = {}
        self._lock = asyncio.Lock()

    async def connect(self, connection_id: str, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self.active_connections[connection_id] = websocket
        logger.info(f"Connection {connection_id} opened. Total: {len(self.active_connections)}")

    async def disconnect(self, connection_id: str) -> None:
        async with self._lock:
            self.active_connections.pop(connection_id, None)
        logger.info(f"Connection {connection_id} closed")

    async def send(self, connection_id: str, message: Dict[str, Any]) -> bool:
        """Returns False when the connection is gone or the send failed"""
        async with self._lock:
            websocket = self.active_connections.get(connection_id)
        if websocket is None:
            return False
        return await self._safe_send(websocket, message)

    async def _safe_send(self, websocket: WebSocket, message: Dict[str, Any]) -> bool:
        if websocket.application_state != WebSocketState.CONNECTED:
            return False
        try:
            await websocket.send_json(message)
            return True
        except (RuntimeError, OSError, WebSocketDisconnect) as e:
            logger.error(f"Error sending message: {e}")
            return False
