"""Shared FastAPI dependencies."""

from __future__ import annotations

from fastapi import Request

from promptory.engine.llm_service import LLMService


def get_llm_service(request: Request) -> LLMService:
    return request.app.state.llm_service
