"""Provider configuration schemas — one variant per backend kind."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, SecretStr, TypeAdapter, computed_field

from promptory.config import settings

ProviderType = Literal["ollama", "openai", "azure_openai", "gemini"]
PROVIDER_TYPES: tuple[str, ...] = ("ollama", "openai", "azure_openai", "gemini")


class _ProviderConfigBase(BaseModel):
    id: str | None = None
    display_name: str
    model_name: str | None = None
    timeout_seconds: int = Field(default=120, ge=1, le=999)
    is_active: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None
    last_validated_at: datetime | None = None
    # Fernet token; stays inside the process
    encrypted_credentials: bytes | None = Field(default=None, exclude=True, repr=False)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def has_credentials(self) -> bool:
        return self.encrypted_credentials is not None


class OllamaProviderConfig(_ProviderConfigBase):
    provider_type: Literal["ollama"] = "ollama"
    base_url: str = Field(default_factory=lambda: settings.ollama_base_url)


class OpenAIProviderConfig(_ProviderConfigBase):
    provider_type: Literal["openai"] = "openai"
    # Only set for OpenAI-compatible gateways
    base_url: str | None = None


class AzureOpenAIProviderConfig(_ProviderConfigBase):
    provider_type: Literal["azure_openai"] = "azure_openai"
    base_url: str
    api_version: str | None = None


class GeminiProviderConfig(_ProviderConfigBase):
    provider_type: Literal["gemini"] = "gemini"


ProviderConfig = Annotated[
    Union[OllamaProviderConfig, OpenAIProviderConfig, AzureOpenAIProviderConfig, GeminiProviderConfig],
    Field(discriminator="provider_type"),
]

provider_config_adapter: TypeAdapter[ProviderConfig] = TypeAdapter(ProviderConfig)


class ProviderSaveRequest(BaseModel):
    config: ProviderConfig
    credential: SecretStr | None = None


class ProviderValidationOut(BaseModel):
    valid: bool
    message: str | None = None
    error: str | None = None
