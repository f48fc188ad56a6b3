import logging
from collections import defaultdict
from typing import Any

from fastapi import WebSocket
from starlette.websockets import WebSocketDisconnect

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Fan-out of change events to WebSocket subscribers, keyed by channel."""

    def __init__(self) -> None:
        self.connections: dict[str, list[WebSocket]] = defaultdict(list)

    async def connect(self, channel: str, websocket: WebSocket) -> None:
        await websocket.accept()
        self.connections[channel].append(websocket)

    def disconnect(self, channel: str, websocket: WebSocket) -> None:
        if channel not in self.connections:
            return
        if websocket in self.connections[channel]:
            self.connections[channel].remove(websocket)
        if not self.connections[channel]:
            del self.connections[channel]

    async def broadcast(self, channel: str, message: dict[str, Any]) -> None:
        if channel not in self.connections:
            return
        dead: list[WebSocket] = []
        for connection in list(self.connections[channel]):
            try:
                await connection.send_json(message)
            except WebSocketDisconnect:
                dead.append(connection)
            except Exception:
                logger.debug("Dropping subscriber on %s after send failure", channel, exc_info=True)
                dead.append(connection)
        for connection in dead:
            self.disconnect(channel, connection)


manager = ConnectionManager()
