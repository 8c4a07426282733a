import json
import logging

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class ConnectionManager:
    def __init__(self) -> None:
        self.active_connections: set[WebSocket] = set()

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self.active_connections.add(websocket)

    def disconnect(self, websocket: WebSocket) -> None:
        self.active_connections.discard(websocket)

    async def broadcast_text(self, message: str) -> None:
        """Send text to every connected board; drop the ones that fail."""
        dead = []
        for ws in list(self.active_connections):
            try:
                await ws.send_text(message)
            except Exception as e:
                logger.info("Dropping websocket client: %s", e)
                dead.append(ws)
        for ws in dead:
            self.disconnect(ws)

    async def broadcast_json(self, payload: dict) -> None:
        await self.broadcast_text(json.dumps(payload))


manager = ConnectionManager()
