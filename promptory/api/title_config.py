"""Title generation settings API."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from promptory.api.deps import get_llm_service
from promptory.engine.llm_service import LLMService
from promptory.schemas.llm import TitleGenerationConfig

router = APIRouter()


@router.get("", response_model=TitleGenerationConfig)
async def get_title_config(service: LLMService = Depends(get_llm_service)):
    return await service.title_config_get()


@router.put("", response_model=TitleGenerationConfig)
async def set_title_config(config: TitleGenerationConfig, service: LLMService = Depends(get_llm_service)):
    return await service.title_config_set(config)
