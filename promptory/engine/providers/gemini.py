"""Google Gemini adapter (Generative Language REST API)."""

from __future__ import annotations

import logging
from typing import Any

from promptory.config import settings
from promptory.engine.errors import UnknownProviderError
from promptory.engine.providers.base import GenerateOptions, GenerateResult, ProviderAdapter
from promptory.schemas.llm import TokenUsage

logger = logging.getLogger(__name__)


class GeminiAdapter(ProviderAdapter):
    provider_type = "gemini"

    def __init__(self, base_url: str | None = None, **kwargs: Any):
        super().__init__(base_url or settings.gemini_base_url, **kwargs)

    def _headers(self) -> dict[str, str]:
        h = super()._headers()
        if self.api_key:
            h["x-goog-api-key"] = self.api_key
        return h

    async def _check_connection(self) -> str:
        await self._request("GET", f"{self.base_url}/models", timeout=10)
        return "Connected to Gemini"

    async def list_models(self) -> list[str]:
        data = await self._request("GET", f"{self.base_url}/models", timeout=10)
        names = []
        for m in data.get("models", []):
            if "generateContent" not in m.get("supportedGenerationMethods", ["generateContent"]):
                continue
            names.append(m.get("name", "").removeprefix("models/"))
        return [n for n in names if n]

    async def _generate(self, prompt: str, options: GenerateOptions, timeout: float) -> GenerateResult:
        generation_config: dict[str, Any] = {}
        if options.temperature is not None:
            generation_config["temperature"] = options.temperature
        if options.max_tokens is not None:
            generation_config["maxOutputTokens"] = options.max_tokens
        if options.top_p is not None:
            generation_config["topP"] = options.top_p

        payload: dict[str, Any] = {"contents": [{"role": "user", "parts": [{"text": prompt}]}]}
        if generation_config:
            payload["generationConfig"] = generation_config

        data = await self._request(
            "POST",
            f"{self.base_url}/models/{options.model}:generateContent",
            json=payload,
            timeout=timeout,
        )
        candidates = data.get("candidates") or []
        if not candidates:
            reason = (data.get("promptFeedback") or {}).get("blockReason", "no candidates")
            raise UnknownProviderError(f"Gemini returned no content: {reason}", self.provider_type)

        candidate = candidates[0]
        parts = (candidate.get("content") or {}).get("parts") or []
        usage = data.get("usageMetadata") or {}
        return GenerateResult(
            content="".join(p.get("text", "") for p in parts),
            model=options.model,
            token_usage=TokenUsage(
                prompt=usage.get("promptTokenCount", 0),
                completion=usage.get("candidatesTokenCount", 0),
                total=usage.get("totalTokenCount", 0),
            ),
            finish_reason=candidate.get("finishReason"),
        )
