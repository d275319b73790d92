"""Provider configuration API."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from promptory.api.deps import get_llm_service
from promptory.engine.llm_service import LLMService
from promptory.schemas.provider import ProviderConfig, ProviderSaveRequest, ProviderValidationOut

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=list[ProviderConfig])
async def list_providers(service: LLMService = Depends(get_llm_service)):
    return await service.provider_list()


@router.post("", response_model=ProviderConfig)
async def save_provider(req: ProviderSaveRequest, service: LLMService = Depends(get_llm_service)):
    credential = req.credential.get_secret_value() if req.credential else None
    return await service.provider_save(req.config, credential)


@router.post("/{config_id}/activate", response_model=ProviderConfig)
async def activate_provider(config_id: str, service: LLMService = Depends(get_llm_service)):
    return await service.provider_set_active(config_id)


@router.post("/{config_id}/validate", response_model=ProviderValidationOut)
async def validate_provider(config_id: str, service: LLMService = Depends(get_llm_service)):
    result = await service.provider_validate(config_id)
    return ProviderValidationOut(valid=result.valid, message=result.message, error=result.error)


@router.delete("/{config_id}")
async def delete_provider(config_id: str, service: LLMService = Depends(get_llm_service)):
    await service.provider_delete(config_id)
    return {"ok": True}
