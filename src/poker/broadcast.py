"""
Fan-out of outbound events to WebSocket connections.

Each registered connection gets an asyncio.Queue and a writer task. publish()
serializes the event once and enqueues it for every recipient without
awaiting, so engine operations are never gated on network I/O and each
connection sees messages in the order they were published.
"""

import asyncio
import contextlib
import json
import logging
import os
from dataclasses import dataclass

from fastapi import WebSocket

from poker.connection_registry import ConnectionRegistry
from poker.engine import OutboundEvent

logger = logging.getLogger(__name__)

# Messages a connection may have pending before it is treated as stalled
OUTBOX_MAXSIZE = int(os.getenv("OUTBOX_MAXSIZE", "256"))


@dataclass
class Outlet:
    """A connection's socket, its pending messages, and the task draining them."""

    websocket: WebSocket
    queue: asyncio.Queue[str]
    writer: asyncio.Task | None = None


class BroadcastGateway:
    """Delivers OutboundEvents to connections resolved through the ConnectionRegistry."""

    def __init__(self, connections: ConnectionRegistry, max_pending: int = OUTBOX_MAXSIZE) -> None:
        self.connections = connections
        self.max_pending = max_pending
        self._outlets: dict[str, Outlet] = {}

    @property
    def connected_count(self) -> int:
        return len(self._outlets)

    def register(self, connection_id: str, websocket: WebSocket) -> None:
        outlet = Outlet(websocket=websocket, queue=asyncio.Queue(maxsize=self.max_pending))
        outlet.writer = asyncio.create_task(self._drain(connection_id, outlet))
        self._outlets[connection_id] = outlet

    async def unregister(self, connection_id: str) -> None:
        outlet = self._outlets.pop(connection_id, None)
        if outlet is None or outlet.writer is None:
            return
        outlet.writer.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await outlet.writer

    async def close(self) -> None:
        for connection_id in list(self._outlets):
            await self.unregister(connection_id)

    def recipients(self, event: OutboundEvent) -> list[str]:
        if event.to is not None:
            return [event.to]
        if event.session_id is None:
            return []
        return [c for c in self.connections.members(event.session_id) if c != event.exclude]

    def publish(self, event: OutboundEvent) -> int:
        """Queue the event for its recipients. Returns how many were queued."""
        message = json.dumps({"type": event.type, **event.payload})
        queued = 0
        for connection_id in self.recipients(event):
            outlet = self._outlets.get(connection_id)
            if outlet is None:
                continue
            try:
                outlet.queue.put_nowait(message)
            except asyncio.QueueFull:
                logger.warning(
                    "Dropping stalled connection %s (%d pending)", connection_id, self.max_pending
                )
                self._drop(connection_id)
                continue
            queued += 1
        return queued

    def _drop(self, connection_id: str) -> None:
        outlet = self._outlets.pop(connection_id, None)
        if outlet is not None and outlet.writer is not None:
            outlet.writer.cancel()

    def publish_all(self, events: list[OutboundEvent]) -> None:
        for event in events:
            self.publish(event)

    async def _drain(self, connection_id: str, outlet: Outlet) -> None:
        while True:
            message = await outlet.queue.get()
            try:
                await outlet.websocket.send_text(message)
            except Exception as e:
                # Unreachable member; delivery is not retried
                logger.warning("Dropping outbound messages for %s: %s", connection_id, e)
                self._outlets.pop(connection_id, None)
                return
