from __future__ import annotations

import asyncio
import threading
from collections import defaultdict
from collections.abc import AsyncIterator
from typing import Any

REFRESH_COUNTS_EVENT = "job-tracker:refresh-counts"


class EventBus:
    """Per-user fan-out of change notifications.

    Publishing happens from sync route handlers running in the threadpool, so
    delivery goes through each subscriber's own loop.
    """

    def __init__(self) -> None:
        self._queues: dict[str, list[tuple[asyncio.AbstractEventLoop, asyncio.Queue[dict[str, Any]]]]] = defaultdict(
            list
        )
        self._lock = threading.Lock()

    def publish(self, user_id: str, event: dict[str, Any]) -> int:
        with self._lock:
            targets = list(self._queues.get(user_id, []))
        delivered = 0
        for loop, queue in targets:
            if loop.is_closed():
                continue
            loop.call_soon_threadsafe(queue.put_nowait, event)
            delivered += 1
        return delivered

    def refresh_counts(self, user_id: str, bucket: str | None = None) -> int:
        return self.publish(user_id, {"type": REFRESH_COUNTS_EVENT, "bucket": bucket})

    def subscriber_count(self, user_id: str) -> int:
        with self._lock:
            return len(self._queues.get(user_id, []))

    async def subscribe(self, user_id: str) -> AsyncIterator[dict[str, Any]]:
        entry = (asyncio.get_running_loop(), asyncio.Queue())
        with self._lock:
            self._queues[user_id].append(entry)

        try:
            while True:
                event = await entry[1].get()
                yield event
        finally:
            with self._lock:
                if entry in self._queues.get(user_id, []):
                    self._queues[user_id].remove(entry)


_EVENT_BUS: EventBus | None = None


def get_event_bus() -> EventBus:
    global _EVENT_BUS
    if _EVENT_BUS is None:
        _EVENT_BUS = EventBus()
    return _EVENT_BUS


def notify_change(user_id: str | None, bucket: str | None = None) -> None:
    """Tell open pages of this user to reload their sidebar counts."""
    if user_id:
        get_event_bus().refresh_counts(user_id, bucket)
