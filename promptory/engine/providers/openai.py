"""OpenAI and Azure OpenAI adapters (chat completions API)."""

from __future__ import annotations

import logging
from typing import Any

from promptory.config import settings
from promptory.engine.errors import UnknownProviderError
from promptory.engine.providers.base import GenerateOptions, GenerateResult, ProviderAdapter
from promptory.schemas.llm import TokenUsage

logger = logging.getLogger(__name__)


class OpenAIAdapter(ProviderAdapter):
    provider_type = "openai"

    def __init__(self, base_url: str | None = None, **kwargs: Any):
        super().__init__(base_url or settings.openai_base_url, **kwargs)

    def _headers(self) -> dict[str, str]:
        h = super()._headers()
        if self.api_key:
            h["Authorization"] = f"Bearer {self.api_key}"
        return h

    def _models_url(self) -> str:
        return f"{self.base_url}/models"

    def _chat_url(self, model: str) -> str:
        return f"{self.base_url}/chat/completions"

    def _chat_payload(self, prompt: str, options: GenerateOptions) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": options.model,
            "messages": [{"role": "user", "content": prompt}],
        }
        if options.temperature is not None:
            payload["temperature"] = options.temperature
        if options.max_tokens is not None:
            payload["max_tokens"] = options.max_tokens
        if options.top_p is not None:
            payload["top_p"] = options.top_p
        return payload

    async def _check_connection(self) -> str:
        await self._request("GET", self._models_url(), timeout=10)
        return f"Connected to {self.provider_type}"

    async def list_models(self) -> list[str]:
        data = await self._request("GET", self._models_url(), timeout=10)
        # Only chat-capable models are useful here
        return sorted(m["id"] for m in data.get("data", []) if "gpt" in m.get("id", ""))

    async def _generate(self, prompt: str, options: GenerateOptions, timeout: float) -> GenerateResult:
        data = await self._request(
            "POST",
            self._chat_url(options.model),
            json=self._chat_payload(prompt, options),
            timeout=timeout,
        )
        choices = data.get("choices") or []
        if not choices:
            raise UnknownProviderError("Response contained no choices", self.provider_type)
        choice = choices[0]
        usage = data.get("usage") or {}
        return GenerateResult(
            content=(choice.get("message") or {}).get("content") or "",
            model=data.get("model", options.model),
            token_usage=TokenUsage(
                prompt=usage.get("prompt_tokens", 0),
                completion=usage.get("completion_tokens", 0),
                total=usage.get("total_tokens", 0),
            ),
            finish_reason=choice.get("finish_reason"),
        )


class AzureOpenAIAdapter(OpenAIAdapter):
    """Azure addresses a deployment rather than a model; the model name is the deployment."""

    provider_type = "azure_openai"

    def __init__(self, base_url: str, api_version: str | None = None, **kwargs: Any):
        super().__init__(base_url, **kwargs)
        self.api_version = api_version or settings.azure_api_version

    def _headers(self) -> dict[str, str]:
        h = {"Content-Type": "application/json"}
        if self.api_key:
            h["api-key"] = self.api_key
        return h

    def _models_url(self) -> str:
        return f"{self.base_url}/openai/models?api-version={self.api_version}"

    def _chat_url(self, model: str) -> str:
        return f"{self.base_url}/openai/deployments/{model}/chat/completions?api-version={self.api_version}"

    def _chat_payload(self, prompt: str, options: GenerateOptions) -> dict[str, Any]:
        payload = super()._chat_payload(prompt, options)
        payload.pop("model")
        return payload

    async def list_models(self) -> list[str]:
        data = await self._request("GET", self._models_url(), timeout=10)
        return sorted(m["id"] for m in data.get("data", []) if m.get("id"))
