"""LLM call, queue and response history API."""

from __future__ import annotations

import asyncio
import json
import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse

from promptory.api.deps import get_llm_service
from promptory.engine.llm_service import LLMService
from promptory.schemas.llm import (
    CancelAllResponse,
    CancelResponse,
    DeleteAllResponse,
    LLMCallRequest,
    LLMCallResponse,
    LLMResponseMetadata,
    LLMResponseOut,
    ModelInfo,
    QueueStatus,
)

logger = logging.getLogger(__name__)

router = APIRouter()

# Comment line sent when no event arrives for this long, keeps proxies from closing the stream
KEEPALIVE_SECONDS = 15.0


@router.post("/call", response_model=LLMCallResponse)
async def call(req: LLMCallRequest, service: LLMService = Depends(get_llm_service)):
    request_id = await service.llm_call(
        req.prompt_id, req.prompt_name, req.prompt_content, req.parameters, req.model
    )
    return LLMCallResponse(request_id=request_id)


@router.post("/requests/{request_id}/cancel", response_model=CancelResponse)
async def cancel(request_id: str, service: LLMService = Depends(get_llm_service)):
    return CancelResponse(success=service.llm_cancel(request_id))


@router.post("/requests/cancel-all", response_model=CancelAllResponse)
async def cancel_all(service: LLMService = Depends(get_llm_service)):
    return CancelAllResponse(cancelled_count=service.llm_cancel_all())


@router.get("/queue", response_model=QueueStatus)
async def queue_status(service: LLMService = Depends(get_llm_service)):
    return service.llm_get_queue_status()


@router.get("/models", response_model=list[ModelInfo])
async def list_models(service: LLMService = Depends(get_llm_service)):
    return await service.llm_list_models()


@router.get("/history/{prompt_id}", response_model=list[LLMResponseMetadata])
async def history(prompt_id: str, service: LLMService = Depends(get_llm_service)):
    return await service.llm_get_history(prompt_id)


@router.delete("/history/{prompt_id}", response_model=DeleteAllResponse)
async def delete_history(prompt_id: str, service: LLMService = Depends(get_llm_service)):
    return DeleteAllResponse(count=await service.llm_delete_all_responses(prompt_id))


@router.get("/responses/{response_id}", response_model=LLMResponseOut)
async def get_response(response_id: str, service: LLMService = Depends(get_llm_service)):
    response = await service.llm_get_response(response_id)
    if response is None:
        raise HTTPException(404, "Response not found")
    return response


@router.delete("/responses/{response_id}")
async def delete_response(response_id: str, service: LLMService = Depends(get_llm_service)):
    if not await service.llm_delete_response(response_id):
        raise HTTPException(404, "Response not found")
    return {"ok": True}


@router.get("/events")
async def events(service: LLMService = Depends(get_llm_service)):
    """Server-Sent Events stream of queue, response and title events."""

    def _sse_event(event: str, data: dict) -> str:
        return f"event: {event}\ndata: {json.dumps(data, ensure_ascii=False)}\n\n"

    async def _event_generator():
        async with service.events.subscribe() as queue:
            while True:
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=KEEPALIVE_SECONDS)
                except asyncio.TimeoutError:
                    yield ": keepalive\n\n"
                    continue
                yield _sse_event(event.event, event.model_dump(mode="json"))

    return StreamingResponse(
        _event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
