"""Ollama adapter for the local daemon's native /api endpoints."""

from __future__ import annotations

import logging
from typing import Any

from promptory.config import settings
from promptory.engine.errors import ModelNotFoundError, ProviderError
from promptory.engine.providers.base import GenerateOptions, GenerateResult, ProviderAdapter
from promptory.schemas.llm import TokenUsage

logger = logging.getLogger(__name__)


class OllamaAdapter(ProviderAdapter):
    provider_type = "ollama"

    def __init__(self, base_url: str | None = None, **kwargs: Any):
        super().__init__(base_url or settings.ollama_base_url, **kwargs)

    async def _check_connection(self) -> str:
        data = await self._request("GET", f"{self.base_url}/api/version", timeout=10)
        return f"Connected to Ollama {data.get('version', 'unknown')}"

    async def list_models(self) -> list[str]:
        data = await self._request("GET", f"{self.base_url}/api/tags", timeout=10)
        return [m["name"] for m in data.get("models", []) if m.get("name")]

    async def _generate(self, prompt: str, options: GenerateOptions, timeout: float) -> GenerateResult:
        model_options: dict[str, Any] = {}
        if options.temperature is not None:
            model_options["temperature"] = options.temperature
        if options.max_tokens is not None:
            model_options["num_predict"] = options.max_tokens
        if options.top_p is not None:
            model_options["top_p"] = options.top_p

        payload: dict[str, Any] = {"model": options.model, "prompt": prompt, "stream": False}
        if model_options:
            payload["options"] = model_options

        try:
            data = await self._request(
                "POST", f"{self.base_url}/api/generate", json=payload, timeout=timeout
            )
        except ModelNotFoundError:
            raise ModelNotFoundError(
                f"Model '{options.model}' not found. Run: ollama pull {options.model}",
                self.provider_type,
            ) from None
        if "error" in data:
            raise ProviderError(str(data["error"]), self.provider_type)

        prompt_tokens = data.get("prompt_eval_count") or 0
        completion_tokens = data.get("eval_count") or 0
        return GenerateResult(
            content=data.get("response", ""),
            model=data.get("model", options.model),
            token_usage=TokenUsage(
                prompt=prompt_tokens,
                completion=completion_tokens,
                total=prompt_tokens + completion_tokens,
            ),
            finish_reason=data.get("done_reason"),
        )
