"""LLMService: the boundary the HTTP layer talks to.

Wires storage, credentials, the queue processor and title generation
together, and exposes one method per external operation.
"""

from __future__ import annotations

import logging

import httpx

from promptory.config import Settings
from promptory.db import create_engine_from_url
from promptory.engine.credentials import CredentialService
from promptory.engine.errors import NoActiveProviderError, NotFoundError, ProviderValidationError
from promptory.engine.events import EventBus
from promptory.engine.llm_storage import LLMStorageService
from promptory.engine.providers import ValidationResult, adapter_for
from promptory.engine.queue_processor import QueueProcessor
from promptory.engine.title_generation import TitleGenerationService
from promptory.engine.token_counter import TokenCounter
from promptory.schemas.llm import (
    LLMResponseMetadata,
    LLMResponseOut,
    ModelInfo,
    QueueStatus,
    TitleGenerationConfig,
)
from promptory.schemas.provider import ProviderConfig

logger = logging.getLogger(__name__)


class LLMService:
    def __init__(
        self,
        storage: LLMStorageService,
        credentials: CredentialService,
        events: EventBus | None = None,
        token_counter: TokenCounter | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        cleanup_orphans: bool = True,
    ):
        self.storage = storage
        self.credentials = credentials
        self.events = events or EventBus()
        self.token_counter = token_counter or TokenCounter()
        self._transport = transport
        self.title_service = TitleGenerationService(
            storage, credentials, self.events, transport=transport
        )
        self.processor = QueueProcessor(
            storage,
            credentials,
            self.events,
            title_service=self.title_service,
            token_counter=self.token_counter,
            transport=transport,
        )
        self._cleanup_orphans = cleanup_orphans

    @classmethod
    def from_settings(cls, cfg: Settings) -> "LLMService":
        engine = create_engine_from_url(cfg.database_url, echo=cfg.debug)
        return cls(
            LLMStorageService(engine, cfg.results_dir),
            CredentialService(cfg.credential_key),
            cleanup_orphans=cfg.cleanup_orphans_on_startup,
        )

    async def start(self) -> None:
        await self.storage.initialize(cleanup_orphans=self._cleanup_orphans)
        self.title_service.update_config(await self.storage.get_title_generation_config())
        if not self.credentials.is_available():
            logger.warning("No credential key configured; hosted providers cannot store API keys")

    async def close(self) -> None:
        await self.processor.shutdown()
        await self.storage.close()

    # ── Providers ───────────────────────────────────

    async def provider_list(self) -> list[ProviderConfig]:
        return await self.storage.list_provider_configs()

    async def provider_save(self, config: ProviderConfig, credential: str | None = None) -> ProviderConfig:
        encrypted = None
        if credential:
            if not self.credentials.validate_credential(credential, config.provider_type):
                raise ProviderValidationError(
                    f"Invalid credential format for {config.provider_type}", config.provider_type
                )
            encrypted = self.credentials.encrypt_credential(credential)
        elif config.provider_type != "ollama":
            existing = await self.storage.get_provider_config(config.id) if config.id else None
            if existing is None or not existing.has_credentials:
                raise ProviderValidationError(
                    f"{config.display_name} requires an API key", config.provider_type
                )
        return await self.storage.save_provider_config(config, encrypted)

    async def provider_set_active(self, config_id: str) -> ProviderConfig:
        return await self.storage.set_active_provider(config_id)

    async def provider_delete(self, config_id: str) -> None:
        if not await self.storage.delete_provider_config(config_id):
            raise NotFoundError("Provider configuration", config_id)

    async def provider_validate(self, config_id: str) -> ValidationResult:
        config = await self.storage.get_provider_config(config_id)
        if config is None:
            raise NotFoundError("Provider configuration", config_id)
        adapter = adapter_for(config, self.credentials, self._transport)
        result = await adapter.validate()
        if result.valid:
            await self.storage.mark_provider_validated(config_id)
        return result

    # ── Calls ───────────────────────────────────────

    async def llm_call(
        self,
        prompt_id: str,
        prompt_name: str,
        prompt_content: str,
        parameters: dict[str, str] | None = None,
        model: str | None = None,
    ) -> str:
        return await self.processor.submit(prompt_id, prompt_name, prompt_content, parameters, model)

    def llm_cancel(self, request_id: str) -> bool:
        return self.processor.cancel(request_id)

    def llm_cancel_all(self) -> int:
        return self.processor.cancel_all()

    def llm_get_queue_status(self) -> QueueStatus:
        return self.processor.status()

    async def llm_list_models(self) -> list[ModelInfo]:
        config = await self.storage.get_active_provider_config()
        if config is None:
            raise NoActiveProviderError()
        adapter = adapter_for(config, self.credentials, self._transport)
        names = await adapter.list_models()
        return [
            ModelInfo(
                id=name,
                name=name,
                provider=config.provider_type,
                context_window=self.token_counter.context_window(config.provider_type, name),
            )
            for name in names
        ]

    # ── History ─────────────────────────────────────

    async def llm_get_history(self, prompt_id: str) -> list[LLMResponseMetadata]:
        return await self.storage.list_response_metadata(prompt_id)

    async def llm_get_response(self, response_id: str) -> LLMResponseOut | None:
        metadata = await self.storage.get_response_metadata(response_id)
        if metadata is None:
            return None
        content = None
        if metadata.file_path and not metadata.orphaned:
            content = await self.storage.get_response_content(metadata.file_path)
        return LLMResponseOut(**metadata.model_dump(), content=content)

    async def llm_delete_response(self, response_id: str) -> bool:
        return await self.storage.delete_response(response_id)

    async def llm_delete_all_responses(self, prompt_id: str) -> int:
        return await self.storage.delete_all_responses(prompt_id)

    # ── Title generation config ─────────────────────

    async def title_config_get(self) -> TitleGenerationConfig:
        return await self.storage.get_title_generation_config()

    async def title_config_set(self, config: TitleGenerationConfig) -> TitleGenerationConfig:
        saved = await self.storage.update_title_generation_config(config)
        self.title_service.update_config(saved)
        return saved
