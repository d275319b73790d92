"""Shared fixtures: temporary storage, a Fernet key and a fake Ollama daemon."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest
from cryptography.fernet import Fernet

from promptory.db import create_engine_from_url
from promptory.engine.credentials import CredentialService
from promptory.engine.llm_service import LLMService
from promptory.engine.llm_storage import LLMStorageService
from promptory.schemas.provider import OllamaProviderConfig

TITLE_PROMPT_PREFIX = "You are a title generator"


class FakeOllama:
    """Async httpx handler imitating the Ollama REST API."""

    def __init__(self, content: str = "TESTING 123"):
        self.content = content
        self.title = '"Testing Output Verification Response"'
        self.models = ["gemma3:latest", "llama2:7b"]
        self.missing_models: set[str] = set()
        self.delay = 0.0
        self.title_status = 200
        self.requests: list[httpx.Request] = []

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    def generate_prompts(self) -> list[str]:
        prompts = []
        for r in self.requests:
            if r.url.path == "/api/generate":
                prompt = json.loads(r.content)["prompt"]
                if not prompt.startswith(TITLE_PROMPT_PREFIX):
                    prompts.append(prompt)
        return prompts

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == "/api/version":
            return httpx.Response(200, json={"version": "0.5.7"})
        if path == "/api/tags":
            return httpx.Response(200, json={"models": [{"name": m} for m in self.models]})
        if path == "/api/generate":
            body = json.loads(request.content)
            if body["prompt"].startswith(TITLE_PROMPT_PREFIX):
                if self.title_status != 200:
                    return httpx.Response(self.title_status, json={"error": "title model crashed"})
                return httpx.Response(200, json={"model": body["model"], "response": self.title, "done": True})
            if body["model"] in self.missing_models:
                return httpx.Response(404, json={"error": f"model '{body['model']}' not found"})
            if self.delay:
                await asyncio.sleep(self.delay)
            return httpx.Response(200, json={
                "model": body["model"],
                "response": self.content,
                "prompt_eval_count": 12,
                "eval_count": 5,
                "done": True,
                "done_reason": "stop",
            })
        return httpx.Response(404, json={"error": "not found"})


@pytest.fixture
def fernet_key():
    return Fernet.generate_key().decode()


@pytest.fixture
def credentials(fernet_key):
    return CredentialService(fernet_key)


@pytest.fixture
def fake_ollama():
    return FakeOllama()


@pytest.fixture
async def storage(tmp_path):
    engine = create_engine_from_url(f"sqlite+aiosqlite:///{tmp_path / 'storage.db'}")
    svc = LLMStorageService(engine, tmp_path / "results")
    await svc.initialize()
    yield svc
    await svc.close()


@pytest.fixture
async def service(tmp_path, credentials, fake_ollama):
    engine = create_engine_from_url(f"sqlite+aiosqlite:///{tmp_path / 'service.db'}")
    svc = LLMService(
        LLMStorageService(engine, tmp_path / "results"),
        credentials,
        transport=fake_ollama.transport,
    )
    await svc.start()
    yield svc
    await svc.close()


async def activate_ollama(service: LLMService, timeout_seconds: int = 120, validate: bool = True):
    """Save, validate and activate a local Ollama provider."""
    config = await service.provider_save(OllamaProviderConfig(
        display_name="Local Ollama",
        base_url="http://localhost:11434",
        model_name="gemma3",
        timeout_seconds=timeout_seconds,
    ))
    if validate:
        result = await service.provider_validate(config.id)
        assert result.valid
    return await service.provider_set_active(config.id)


async def wait_until(predicate, timeout: float = 2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)
