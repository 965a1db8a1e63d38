"""In-process event bus.

Typed pub/sub channel passed explicitly to sessions and gates, so tests
can give each component its own isolated bus. Each subscriber owns a
bounded asyncio.Queue; when a slow subscriber's queue is full the oldest
event is dropped for that subscriber only.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

VIBE_UPDATED = "vibe_updated"
GATE_RECEIPT = "gate_receipt"
SIGNAL_INSUFFICIENT = "signal_insufficient"


@dataclass(frozen=True)
class BusEvent:
    topic: str
    payload: dict[str, Any]
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.topic, "payload": self.payload, "timestamp": self.timestamp}


class Subscription:
    """Async iterator over events; use as a context manager to unsubscribe."""

    def __init__(self, bus: EventBus, topics: frozenset[str] | None, maxsize: int):
        self._bus = bus
        self.topics = topics
        self.queue: asyncio.Queue[BusEvent] = asyncio.Queue(maxsize=maxsize)

    def wants(self, topic: str) -> bool:
        return self.topics is None or topic in self.topics

    async def get(self) -> BusEvent:
        return await self.queue.get()

    def close(self) -> None:
        self._bus.unsubscribe(self)

    def __aiter__(self):
        return self

    async def __anext__(self) -> BusEvent:
        return await self.queue.get()

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class EventBus:
    def __init__(self, maxsize: int = 100):
        self._maxsize = maxsize
        self._subscribers: list[Subscription] = []

    def subscribe(self, *topics: str) -> Subscription:
        sub = Subscription(self, frozenset(topics) or None, self._maxsize)
        self._subscribers.append(sub)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        if sub in self._subscribers:
            self._subscribers.remove(sub)

    def publish(self, topic: str, payload: dict[str, Any]) -> BusEvent:
        event = BusEvent(topic=topic, payload=payload)
        for sub in self._subscribers:
            if not sub.wants(topic):
                continue
            if sub.queue.full():
                sub.queue.get_nowait()
                logger.warning(f"Event bus subscriber lagging, dropped oldest {topic} event")
            sub.queue.put_nowait(event)
        return event

    def emit(self, event: dict[str, Any]) -> None:
        """ReceiptSink interface: gate receipts go out on GATE_RECEIPT."""
        self.publish(GATE_RECEIPT, event)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)
