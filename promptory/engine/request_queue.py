"""In-memory FIFO of pending LLM requests."""

from __future__ import annotations

import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime

from promptory.db import utcnow
from promptory.schemas.llm import RequestStatus


@dataclass
class LLMRequest:
    prompt_id: str
    prompt_name: str
    prompt_content: str  # after parameter substitution
    provider: str
    model: str
    parameters: dict[str, str] = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: RequestStatus = "pending"
    created_at: datetime = field(default_factory=utcnow)
    started_at: datetime | None = None


class RequestQueue:
    """Ordered queue of requests waiting for the processor.

    Ids are not required to be unique: two requests with the same id are two
    independent entries, and ``remove`` drops only the oldest of them.
    """

    def __init__(self) -> None:
        self._items: deque[LLMRequest] = deque()

    def enqueue(self, request: LLMRequest) -> None:
        self._items.append(request)

    def dequeue(self) -> LLMRequest | None:
        if not self._items:
            return None
        return self._items.popleft()

    def peek(self) -> LLMRequest | None:
        return self._items[0] if self._items else None

    def remove(self, request_id: str) -> bool:
        for index, request in enumerate(self._items):
            if request.id == request_id:
                del self._items[index]
                return True
        return False

    def has(self, request_id: str) -> bool:
        return any(request.id == request_id for request in self._items)

    def size(self) -> int:
        return len(self._items)

    def is_empty(self) -> bool:
        return not self._items

    def clear(self) -> None:
        self._items.clear()

    def to_list(self) -> list[LLMRequest]:
        """Snapshot of the queue; later queue operations do not affect it."""
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)
