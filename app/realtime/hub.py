"""Process-wide broadcast hub for the realtime channel.

Connection lifecycle is explicit message passing: websocket endpoints
submit ``ConnectionEvent``s (connect / message / disconnect) to the hub's
inbox and a single dispatch loop applies them to the registry. Broadcasts
iterate a snapshot of the registry and drop connections whose send fails;
there is no queueing or replay for clients that are not connected.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Literal, Optional

from fastapi import WebSocket

from app.realtime.events import RealtimeEvent, EventType

logger = logging.getLogger(__name__)


@dataclass
class ConnectionEvent:
    kind: Literal["connect", "message", "disconnect"]
    client_id: str
    websocket: Optional[WebSocket] = None
    message: Optional[str] = None


class BroadcastHub:
    def __init__(self):
        self._connections: dict[str, WebSocket] = {}
        self._inbox: asyncio.Queue[ConnectionEvent] | None = None
        self._task: asyncio.Task | None = None
        self.stats = {"total_connections": 0, "events_broadcast": 0}

    # ── lifecycle ──────────────────────────────────────────────────────────
    async def start(self) -> None:
        self._inbox = asyncio.Queue()
        self._task = asyncio.create_task(self._dispatch_loop(), name="realtime-dispatch")
        logger.info("realtime hub started")

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        self._connections.clear()
        logger.info("realtime hub stopped")

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def connection_count(self) -> int:
        return len(self._connections)

    # ── inbound ────────────────────────────────────────────────────────────
    async def submit(self, event: ConnectionEvent) -> None:
        if self._inbox is None:
            raise RuntimeError("hub not started")
        await self._inbox.put(event)

    async def _dispatch_loop(self) -> None:
        while True:
            event = await self._inbox.get()
            try:
                await self._handle(event)
            except Exception:
                logger.exception("realtime dispatch failed for %s/%s", event.kind, event.client_id)
            finally:
                self._inbox.task_done()

    async def _handle(self, event: ConnectionEvent) -> None:
        if event.kind == "connect":
            self._connections[event.client_id] = event.websocket
            self.stats["total_connections"] += 1
            logger.info("realtime client connected: %s (%d active)", event.client_id, len(self._connections))
            await self._send(event.client_id, event.websocket, RealtimeEvent(
                event=EventType.CONNECTED.value,
                data={"clientId": event.client_id, "at": datetime.now(timezone.utc).isoformat()},
            ))
        elif event.kind == "disconnect":
            if self._connections.pop(event.client_id, None) is not None:
                logger.info("realtime client disconnected: %s", event.client_id)
        elif event.kind == "message":
            ws = self._connections.get(event.client_id)
            if ws is not None and (event.message or "").strip() == "ping":
                await ws.send_text("pong")

    # ── outbound ───────────────────────────────────────────────────────────
    async def _send(self, client_id: str, ws: WebSocket, event: RealtimeEvent) -> bool:
        try:
            await ws.send_json(event.to_dict())
            return True
        except Exception as e:
            logger.debug("realtime send to %s failed: %s", client_id, e)
            self._connections.pop(client_id, None)
            return False

    async def broadcast(self, event: RealtimeEvent) -> int:
        """Send one event to every registered connection; returns deliveries made."""
        delivered = 0
        for client_id, ws in list(self._connections.items()):
            if await self._send(client_id, ws, event):
                delivered += 1
        self.stats["events_broadcast"] += 1
        return delivered

    async def publish(self, events: list[RealtimeEvent]) -> None:
        for event in events:
            await self.broadcast(event)
