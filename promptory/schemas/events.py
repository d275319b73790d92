"""Events pushed from the queue processor to the UI (one-way)."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel

from promptory.schemas.llm import RequestStatus, TitleStatus, TokenUsage


class ResponseCompleteEvent(BaseModel):
    event: Literal["response.complete"] = "response.complete"
    request_id: str
    response_id: str
    prompt_id: str
    status: RequestStatus
    error: str | None = None


class QueueUpdatedEvent(BaseModel):
    event: Literal["queue.updated"] = "queue.updated"
    queue_size: int
    added_request_id: str | None = None
    removed_request_id: str | None = None


class RequestProgressEvent(BaseModel):
    event: Literal["request.progress"] = "request.progress"
    request_id: str
    status: RequestStatus
    elapsed_ms: int | None = None
    token_usage: TokenUsage | None = None


class TitleStatusEvent(BaseModel):
    event: Literal["title.status"] = "title.status"
    response_id: str
    status: TitleStatus
    title: str | None = None
    generated_at: datetime | None = None
    model: str | None = None
