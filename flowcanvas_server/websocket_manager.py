"""
WebSocket Manager - Handles real-time connections and broadcasts.

Every connected canvas view receives a canvas_updated message carrying the
new scene whenever the canvas state changes, so all views stay in sync.
"""
import asyncio
import json
import logging
from typing import Set

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class WebSocketManager:
    """
    Manages WebSocket connections and broadcasts.

    Sends to clients that have gone away are dropped and the client is
    unregistered.
    """

    def __init__(self):
        self._connections: Set[WebSocket] = set()
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket):
        """Accept and register a new WebSocket connection."""
        await websocket.accept()
        async with self._lock:
            self._connections.add(websocket)
        logger.info("WebSocket connected. Total connections: %d", len(self._connections))

    async def disconnect(self, websocket: WebSocket):
        """Remove a WebSocket connection."""
        async with self._lock:
            self._connections.discard(websocket)
        logger.info("WebSocket disconnected. Total connections: %d", len(self._connections))

    async def send(self, websocket: WebSocket, message: dict):
        """Send a message to one client."""
        await websocket.send_text(json.dumps(message))

    async def broadcast(self, message: dict):
        """Broadcast a message to all connected clients."""
        if not self._connections:
            return

        # Serialize once for all clients
        message_text = json.dumps(message)
        failed: Set[WebSocket] = set()

        async with self._lock:
            for websocket in self._connections:
                try:
                    await websocket.send_text(message_text)
                except Exception as e:
                    logger.debug("Dropping WebSocket after failed send: %s", e)
                    failed.add(websocket)

            self._connections -= failed

    async def notify_canvas_updated(self, workflow_id: str, scene: dict):
        """Tell every client the canvas changed and send the scene to draw."""
        await self.broadcast({
            "type": "canvas_updated",
            "workflow_id": workflow_id,
            "scene": scene,
        })

    @property
    def connection_count(self) -> int:
        """Get the number of active connections."""
        return len(self._connections)
