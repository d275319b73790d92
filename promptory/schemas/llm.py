"""Schemas for LLM calls, stored responses and queue status."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

RequestStatus = Literal["pending", "processing", "completed", "failed", "cancelled"]
TitleStatus = Literal["pending", "completed", "failed"]

# 1 = files written before title generation existed, 2 = title-aware
METADATA_SCHEMA_VERSION = 2


class TokenUsage(BaseModel):
    prompt: int = 0
    completion: int = 0
    total: int = 0


class TitleInfo(BaseModel):
    """Title generation state; absent entirely on responses that never had one."""

    status: TitleStatus
    generated_title: str | None = None
    generated_at: datetime | None = None
    model: str | None = None


class LLMResponseMetadata(BaseModel):
    id: str
    prompt_id: str
    provider: str
    model: str
    parameters: dict[str, str] = Field(default_factory=dict)
    created_at: datetime
    status: RequestStatus
    file_path: str | None = None
    response_time_ms: int | None = None
    token_usage: TokenUsage | None = None
    cost_estimate: float | None = None
    error_code: str | None = None
    error_message: str | None = None
    title: TitleInfo | None = None
    # Read-side flag: file_path is set but the file is gone
    orphaned: bool = False
    schema_version: int = METADATA_SCHEMA_VERSION


class LLMResponseOut(LLMResponseMetadata):
    content: str | None = None


class LLMCallRequest(BaseModel):
    prompt_id: str
    prompt_name: str
    prompt_content: str
    parameters: dict[str, str] = Field(default_factory=dict)
    model: str | None = None


class LLMCallResponse(BaseModel):
    request_id: str


class CancelResponse(BaseModel):
    success: bool


class CancelAllResponse(BaseModel):
    cancelled_count: int


class DeleteAllResponse(BaseModel):
    count: int


class ModelInfo(BaseModel):
    id: str
    name: str
    provider: str
    context_window: int


class CurrentRequestInfo(BaseModel):
    id: str
    prompt_id: str
    started_at: datetime
    elapsed_ms: int


class QueueStatus(BaseModel):
    queue_size: int
    current_request: CurrentRequestInfo | None = None


class TitleGenerationConfig(BaseModel):
    enabled: bool = True
    selected_model: str
    selected_provider: Literal["ollama", "openai", "azure_openai", "gemini"] = "ollama"
    # Range enforced by LLMStorageService.update_title_generation_config
    timeout_seconds: int = 30
