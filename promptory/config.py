"""Global configuration via pydantic-settings."""

from __future__ import annotations

from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── App ──────────────────────────────────────────
    app_name: str = "Promptory LLM Service"
    debug: bool = False
    api_prefix: str = "/api/v1"
    log_level: str = "INFO"

    # ── Storage ──────────────────────────────────────
    database_url: str = "sqlite+aiosqlite:///./data/promptory.db"
    results_dir: str = "./data/results"
    cleanup_orphans_on_startup: bool = True

    # ── Credentials ──────────────────────────────────
    # Fernet key; leaving it empty disables credential storage
    credential_key: str = ""

    # ── Providers ────────────────────────────────────
    ollama_base_url: str = "http://localhost:11434"
    openai_base_url: str = "https://api.openai.com/v1"
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    azure_api_version: str = "2024-02-01"
    default_timeout_seconds: int = 120  # Per-request LLM call timeout in seconds
    default_model: str = "gemma3"

    # ── Title generation ─────────────────────────────
    title_enabled: bool = True
    title_model: str = "gemma3:1b"
    title_provider: Literal["ollama", "openai", "azure_openai", "gemini"] = "ollama"
    title_timeout_seconds: int = 30

    # ── CORS ──────────────────────────────────────────
    cors_origins: str = "*"

    model_config = {"env_prefix": "PROMPTORY_", "env_file": ".env"}


settings = Settings()
