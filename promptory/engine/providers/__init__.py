"""Provider adapters and the factory that picks one per configuration."""

from __future__ import annotations

import httpx

from promptory.config import settings
from promptory.engine.credentials import CredentialService
from promptory.engine.errors import ProviderValidationError
from promptory.engine.providers.base import (
    GenerateOptions,
    GenerateResult,
    ProviderAdapter,
    ValidationResult,
    race_deadline,
)
from promptory.engine.providers.gemini import GeminiAdapter
from promptory.engine.providers.ollama import OllamaAdapter
from promptory.engine.providers.openai import AzureOpenAIAdapter, OpenAIAdapter
from promptory.schemas.provider import (
    AzureOpenAIProviderConfig,
    GeminiProviderConfig,
    OllamaProviderConfig,
    OpenAIProviderConfig,
    ProviderConfig,
)

__all__ = [
    "AzureOpenAIAdapter",
    "GeminiAdapter",
    "GenerateOptions",
    "GenerateResult",
    "OllamaAdapter",
    "OpenAIAdapter",
    "ProviderAdapter",
    "ValidationResult",
    "adapter_for",
    "create_adapter",
    "race_deadline",
]


def create_adapter(
    config: ProviderConfig,
    api_key: str | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ProviderAdapter:
    """Build the adapter matching ``config.provider_type``."""
    timeout = config.timeout_seconds or settings.default_timeout_seconds
    if isinstance(config, OllamaProviderConfig):
        return OllamaAdapter(config.base_url, timeout_seconds=timeout, transport=transport)
    if not api_key:
        raise ProviderValidationError(
            f"{config.display_name} requires an API key", config.provider_type
        )
    if isinstance(config, AzureOpenAIProviderConfig):
        return AzureOpenAIAdapter(
            config.base_url,
            api_version=config.api_version,
            api_key=api_key,
            timeout_seconds=timeout,
            transport=transport,
        )
    if isinstance(config, OpenAIProviderConfig):
        return OpenAIAdapter(config.base_url, api_key=api_key, timeout_seconds=timeout, transport=transport)
    if isinstance(config, GeminiProviderConfig):
        return GeminiAdapter(api_key=api_key, timeout_seconds=timeout, transport=transport)
    raise ProviderValidationError(f"Unsupported provider type: {config.provider_type}")


def adapter_for(
    config: ProviderConfig,
    credentials: CredentialService,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ProviderAdapter:
    """Decrypt the stored credential (if any) and build the adapter."""
    api_key = None
    if config.encrypted_credentials:
        api_key = credentials.decrypt_credential(config.encrypted_credentials)
    return create_adapter(config, api_key, transport)
