"""Token estimation and per-model context limits."""

from __future__ import annotations

import math
from dataclasses import dataclass

# Share of the context window a prompt may use
CONSERVATIVE_RATIO = 0.8

DEFAULT_CONTEXT_WINDOW = 4096

_CONTEXT_WINDOWS: dict[str, int] = {
    "ollama:gemma3": 8192,
    "ollama:llama2": 4096,
    "ollama:mistral": 8192,
    "openai:gpt-4": 8192,
    "openai:gpt-4-turbo": 128000,
    "openai:gpt-4o": 128000,
    "openai:gpt-3.5-turbo": 16385,
    "azure_openai:gpt-4": 8192,
    "azure_openai:gpt-4-turbo": 128000,
    "azure_openai:gpt-35-turbo": 16385,
    "gemini:gemini-pro": 32768,
    "gemini:gemini-1.5-pro": 1048576,
    "gemini:gemini-1.5-flash": 1048576,
}


@dataclass
class TokenCheck:
    within_limit: bool
    token_count: int
    limit: int


class TokenCounter:
    """Heuristic token counts; real tokenizers differ per model."""

    def __init__(self, context_windows: dict[str, int] | None = None):
        self._windows = dict(_CONTEXT_WINDOWS)
        if context_windows:
            self._windows.update(context_windows)

    def estimate_tokens(self, text: str) -> int:
        if not text:
            return 0
        by_chars = math.ceil(len(text) / 4)
        by_words = len(text.split())
        return math.ceil((by_chars + by_words) / 2)

    def context_window(self, provider: str, model: str) -> int:
        window = self._windows.get(f"{provider}:{model}")
        if window is None and ":" in model:
            # Ollama tags: "gemma3:latest" -> "gemma3"
            window = self._windows.get(f"{provider}:{model.split(':', 1)[0]}")
        return window or DEFAULT_CONTEXT_WINDOW

    def limit_for(self, provider: str, model: str) -> int:
        return math.floor(self.context_window(provider, model) * CONSERVATIVE_RATIO)

    def check(self, text: str, provider: str, model: str) -> TokenCheck:
        count = self.estimate_tokens(text)
        limit = self.limit_for(provider, model)
        return TokenCheck(within_limit=count <= limit, token_count=count, limit=limit)
