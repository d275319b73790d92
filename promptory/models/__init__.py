from promptory.models.provider_config import ProviderConfiguration
from promptory.models.llm_response import LLMResponseRecord
from promptory.models.title_config import TitleGenerationSettings

__all__ = [
    "ProviderConfiguration",
    "LLMResponseRecord",
    "TitleGenerationSettings",
]
