"""Event bus that fans processor events out to any number of subscribers."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Protocol

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class EventSink(Protocol):
    def publish(self, event: BaseModel) -> None: ...


class EventBus:
    """Each subscriber gets its own bounded queue; a slow subscriber drops events."""

    def __init__(self, max_queue_size: int = 256):
        self._max_queue_size = max_queue_size
        self._subscribers: set[asyncio.Queue[BaseModel]] = set()

    def publish(self, event: BaseModel) -> None:
        for queue in list(self._subscribers):
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning(f"Dropping {getattr(event, 'event', type(event).__name__)} for a slow subscriber")

    @asynccontextmanager
    async def subscribe(self) -> AsyncIterator[asyncio.Queue[BaseModel]]:
        queue: asyncio.Queue[BaseModel] = asyncio.Queue(maxsize=self._max_queue_size)
        self._subscribers.add(queue)
        try:
            yield queue
        finally:
            self._subscribers.discard(queue)
