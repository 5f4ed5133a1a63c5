"""
WebSocket connection manager: owns every live connection handle.

Outbound delivery never blocks the caller. Each connection gets a bounded
queue drained by its own writer task, so one slow client cannot hold up
fan-out to the others.
"""
import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional
from uuid import uuid4

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class Connection:
    """One client transport connection."""

    def __init__(self, websocket: WebSocket, queue_size: int):
        self.id = uuid4().hex
        self.websocket = websocket
        self.queue: "asyncio.Queue[Dict[str, Any]]" = asyncio.Queue(maxsize=queue_size)
        self.writer: Optional[asyncio.Task] = None
        client = websocket.client
        self.remote_address: Optional[str] = client.host if client else None
        self.user_agent: Optional[str] = websocket.headers.get("user-agent")


class ConnectionManager:
    """Manage WebSocket connections for real-time fan-out."""

    def __init__(self, queue_size: int = 256):
        self.queue_size = queue_size
        # Active connections: {connection_id: Connection}
        self.active_connections: Dict[str, Connection] = {}

    async def connect(self, websocket: WebSocket) -> Connection:
        """Register and accept a WebSocket, then start its writer."""
        connection = Connection(websocket, self.queue_size)
        self.active_connections[connection.id] = connection
        await websocket.accept()
        connection.writer = asyncio.create_task(self._drain(connection))
        logger.info(
            "WebSocket connected",
            extra={"connection_id": connection.id, "status": "connected"},
        )
        return connection

    async def disconnect(self, connection_id: str) -> None:
        """Forget a connection and stop its writer. Safe to call twice."""
        connection = self.active_connections.pop(connection_id, None)
        if connection is None:
            return
        writer = connection.writer
        if writer is not None and not writer.done():
            writer.cancel()
            try:
                await writer
            except asyncio.CancelledError:
                pass
        logger.info(
            "WebSocket disconnected",
            extra={"connection_id": connection_id, "status": "disconnected"},
        )

    def send_personal_message(self, message: Dict[str, Any], connection_id: str) -> bool:
        """Queue a message for one connection. Returns False if it was not queued."""
        connection = self.active_connections.get(connection_id)
        if connection is None:
            return False
        try:
            connection.queue.put_nowait(message)
        except asyncio.QueueFull:
            logger.warning(
                "Outbound queue full, dropping event",
                extra={
                    "connection_id": connection_id,
                    "event": message.get("type"),
                    "status": "dropped",
                },
            )
            return False
        return True

    def send_many(self, message: Dict[str, Any], connection_ids: Iterable[str]) -> int:
        """Queue a message for several connections; returns how many accepted it."""
        delivered = 0
        for connection_id in connection_ids:
            if self.send_personal_message(message, connection_id):
                delivered += 1
        return delivered

    def broadcast(self, message: Dict[str, Any]) -> int:
        """Queue a message for every connected client."""
        return self.send_many(message, list(self.active_connections.keys()))

    def connection_ids(self) -> List[str]:
        return list(self.active_connections.keys())

    def get_connection_count(self) -> int:
        """Get total number of active connections."""
        return len(self.active_connections)

    def is_connected(self, connection_id: Optional[str]) -> bool:
        return bool(connection_id) and connection_id in self.active_connections

    async def close_all(self) -> None:
        for connection_id in list(self.active_connections.keys()):
            await self.disconnect(connection_id)

    async def _drain(self, connection: Connection) -> None:
        while True:
            message = await connection.queue.get()
            try:
                await connection.websocket.send_json(message)
            except Exception as e:
                # The receive loop notices the closed socket and cleans up.
                logger.error(
                    f"Error sending message to connection {connection.id}: {e}",
                    extra={"connection_id": connection.id, "event": message.get("type")},
                )
                return
