"""Title generation — best-effort short titles for completed responses.

Runs out-of-band after a response is stored. Failures never propagate: the
response keeps ``title_generation_status = failed`` and callers get the
response's model name as a fallback title.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass

import httpx

from promptory.config import settings
from promptory.db import utcnow
from promptory.engine.credentials import CredentialService
from promptory.engine.errors import ProviderValidationError
from promptory.engine.events import EventSink
from promptory.engine.llm_storage import LLMStorageService
from promptory.engine.providers import GenerateOptions, OllamaAdapter, ProviderAdapter, adapter_for
from promptory.schemas.events import TitleStatusEvent
from promptory.schemas.llm import TitleGenerationConfig, TitleStatus

logger = logging.getLogger(__name__)

MAX_CONTENT_CHARS = 500
MAX_TITLE_CHARS = 150

SYSTEM_PROMPT = (
    "You are a title generator. Generate a concise, descriptive title for the given text.\n"
    "Rules:\n"
    "- Title must be 5-8 words\n"
    "- Use the same language as the input text\n"
    "- Be specific and descriptive\n"
    "- No quotation marks or special formatting\n"
    "- Output only the title, nothing else"
)


@dataclass
class TitleResult:
    success: bool
    title: str | None = None
    skipped: bool = False
    fallback: bool = False
    error: str | None = None


def truncate_content(content: str, limit: int = MAX_CONTENT_CHARS) -> str:
    if len(content) <= limit:
        return content
    truncated = content[:limit]
    last_space = truncated.rfind(" ")
    return truncated[:last_space] if last_space > 0 else truncated


def clean_title(title: str) -> str:
    """Strip wrapping quotes and cap the length at a word boundary."""
    cleaned = title.strip().splitlines()[0].strip() if title.strip() else ""
    cleaned = cleaned.strip("\"'“”‘’").strip()
    if len(cleaned) > MAX_TITLE_CHARS:
        truncated = cleaned[:MAX_TITLE_CHARS - 3]
        last_space = truncated.rfind(" ")
        cleaned = (truncated[:last_space] if last_space > 0 else truncated) + "..."
    return cleaned


def build_title_prompt(content: str) -> str:
    return f"{SYSTEM_PROMPT}\n\nGenerate a title for this text:\n\n{content}"


class TitleGenerationService:
    def __init__(
        self,
        storage: LLMStorageService,
        credentials: CredentialService,
        events: EventSink | None = None,
        config: TitleGenerationConfig | None = None,
        adapter: ProviderAdapter | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._storage = storage
        self._credentials = credentials
        self._events = events
        self._config = config or TitleGenerationConfig(
            enabled=settings.title_enabled,
            selected_model=settings.title_model,
            selected_provider=settings.title_provider,
            timeout_seconds=settings.title_timeout_seconds,
        )
        self._adapter = adapter
        self._transport = transport
        self._lock = asyncio.Lock()

    @property
    def config(self) -> TitleGenerationConfig:
        return self._config

    def update_config(self, config: TitleGenerationConfig) -> None:
        self._config = config
        logger.info(f"Title generation config updated: {config.selected_provider}/{config.selected_model}")

    async def _resolve_adapter(self) -> ProviderAdapter:
        if self._adapter is not None:
            return self._adapter
        provider = self._config.selected_provider
        stored = await self._storage.get_provider_config_by_type(provider)
        if stored is not None:
            return adapter_for(stored, self._credentials, self._transport)
        if provider == "ollama":
            return OllamaAdapter(settings.ollama_base_url, transport=self._transport)
        raise ProviderValidationError(f"No {provider} provider configured for title generation", provider)

    def _emit(self, response_id: str, status: TitleStatus, **fields) -> None:
        if self._events is not None:
            self._events.publish(TitleStatusEvent(response_id=response_id, status=status, **fields))

    async def generate_title(self, response_id: str, content: str, fallback_model: str) -> TitleResult:
        """Generate and persist a title. Never raises."""
        config = self._config
        if not config.enabled:
            logger.debug(f"Title generation disabled, skipping {response_id}")
            return TitleResult(success=True, skipped=True)

        async with self._lock:
            t0 = time.perf_counter()
            try:
                await self._storage.update_response_title(response_id, "pending")
                self._emit(response_id, "pending")

                adapter = await self._resolve_adapter()
                result = await adapter.generate(
                    build_title_prompt(truncate_content(content)),
                    GenerateOptions(model=config.selected_model, timeout_seconds=config.timeout_seconds),
                )
                title = clean_title(result.content)
                if not title:
                    raise ProviderValidationError("Model returned an empty title", config.selected_provider)

                generated_at = utcnow()
                await self._storage.update_response_title(
                    response_id, "completed", title, config.selected_model, generated_at
                )
            except Exception as e:
                logger.warning(f"Title generation failed for {response_id}: {e}")
                await self._mark_failed(response_id, fallback_model)
                return TitleResult(success=True, title=fallback_model, fallback=True, error=str(e))

            latency_ms = (time.perf_counter() - t0) * 1000
            logger.info(f"Title generated for {response_id} in {latency_ms:.0f}ms")
            self._emit(
                response_id, "completed",
                title=title, generated_at=generated_at, model=config.selected_model,
            )
            return TitleResult(success=True, title=title)

    async def _mark_failed(self, response_id: str, fallback_model: str) -> None:
        try:
            await self._storage.update_response_title(response_id, "failed")
        except Exception:
            logger.exception(f"Could not record failed title status for {response_id}")
        self._emit(response_id, "failed", title=fallback_model, model=fallback_model)
