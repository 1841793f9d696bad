"""
WebSocket transport for the broadcaster.

Each connection gets a handle, an outbound queue and a writer task. deliver_to
only enqueues, so a publish never waits on a slow socket and messages reach a
client in the order they were handed over.
"""

import asyncio
import logging
import uuid
from typing import Any, Dict, Optional

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class DeliveryError(Exception):
    """Raised when a payload cannot be handed to a connection."""
    def __init__(self, handle: str, reason: str):
        self.handle = handle
        self.reason = reason
        super().__init__(f"{handle}: {reason}")


class _Connection:
    def __init__(self, handle: str, websocket: WebSocket, max_pending: int):
        self.handle = handle
        self.websocket = websocket
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=max_pending)
        self.alive = True
        self.task: Optional[asyncio.Task] = None


class ConnectionTransport:
    def __init__(self, max_pending: int = 256):
        self._max_pending = max_pending
        self._connections: Dict[str, _Connection] = {}

    def open(self, websocket: WebSocket) -> str:
        handle = f"conn-{uuid.uuid4().hex}"
        conn = _Connection(handle, websocket, self._max_pending)
        conn.task = asyncio.create_task(self._writer(conn))
        self._connections[handle] = conn
        logger.info(f"[WS] Client connected as {handle} ({len(self._connections)} total)")
        return handle

    async def deliver_to(self, handle: str, payload: Dict[str, Any]):
        conn = self._connections.get(handle)
        if conn is None:
            raise DeliveryError(handle, "unknown connection")
        if not conn.alive:
            raise DeliveryError(handle, "connection is closed")
        try:
            conn.queue.put_nowait(payload)
        except asyncio.QueueFull:
            raise DeliveryError(handle, f"outbound queue full ({self._max_pending} pending)")

    async def close(self, handle: str):
        conn = self._connections.pop(handle, None)
        if conn is None:
            return
        conn.alive = False
        if conn.task:
            conn.task.cancel()
            try:
                await conn.task
            except asyncio.CancelledError:
                pass
        logger.info(f"[WS] Client {handle} closed ({len(self._connections)} remaining)")

    async def close_all(self):
        for handle in list(self._connections):
            await self.close(handle)

    def is_open(self, handle: str) -> bool:
        conn = self._connections.get(handle)
        return conn is not None and conn.alive

    async def _writer(self, conn: _Connection):
        while True:
            payload = await conn.queue.get()
            try:
                await conn.websocket.send_json(payload)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                conn.alive = False
                logger.warning(f"[WS] Send to {conn.handle} failed, dropping writer: {e}")
                return
