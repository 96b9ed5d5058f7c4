"""
Connection registry for the admin live-update stream.

Each open SSE connection registers a bounded ``asyncio.Queue``; a
broadcast fans the event out to every registered queue.  Delivery is
best effort: a full queue drops the event for that stream only.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

logger = logging.getLogger(__name__)


class LiveUpdateRegistry:
    def __init__(self, queue_size: int = 50) -> None:
        self._queue_size = queue_size
        self._streams: set[asyncio.Queue] = set()

    def __len__(self) -> int:
        return len(self._streams)

    def open_stream(self) -> asyncio.Queue:
        """Create a queue sized for this registry and register it."""
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._queue_size)
        self.register(queue)
        return queue

    def register(self, handle: asyncio.Queue) -> None:
        self._streams.add(handle)
        logger.debug("Live stream registered (%d open)", len(self._streams))

    def unregister(self, handle: asyncio.Queue) -> None:
        self._streams.discard(handle)
        logger.debug("Live stream closed (%d open)", len(self._streams))

    def broadcast(self, event: dict[str, Any]) -> int:
        """Queue *event* on every open stream; return how many accepted it."""
        delivered = 0
        for queue in list(self._streams):
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.debug("Live stream queue full; dropping %s", event.get("type"))
                continue
            delivered += 1
        if self._streams:
            logger.debug("Broadcast %s → %d/%d streams", event.get("type"), delivered, len(self._streams))
        return delivered
