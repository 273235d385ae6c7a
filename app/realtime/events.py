"""Event names and frames relayed over the realtime channel."""
import json
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class EventType(str, Enum):
    CONNECTED = "connected"
    ORDER_CREATED = "order-created"
    ORDER_UPDATED = "order-updated"
    ORDER_DELETED = "order-deleted"
    STOCK_UPDATED = "stock-updated"
    STOCK_DELETED = "stock-deleted"


@dataclass
class RealtimeEvent:
    """One frame on the wire: ``{"event": ..., "data": ..., "timestamp": ...}``."""
    event: str
    data: dict[str, Any]
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


class EventBuffer:
    """Collects events raised by a mutation.

    Services only append after their transaction has committed, so a
    failed mutation leaves the buffer empty and nothing is broadcast.
    """

    def __init__(self):
        self._events: list[RealtimeEvent] = []

    def emit(self, event: EventType | str, data: dict[str, Any]) -> None:
        name = event.value if isinstance(event, EventType) else event
        self._events.append(RealtimeEvent(event=name, data=data))

    def drain(self) -> list[RealtimeEvent]:
        events, self._events = self._events, []
        return events

    def names(self) -> list[str]:
        return [e.event for e in self._events]

    def __iter__(self):
        return iter(list(self._events))

    def __len__(self) -> int:
        return len(self._events)
