"""Tests for the hybrid metadata + file response store."""

from __future__ import annotations

from datetime import datetime, timedelta

import pytest
from sqlalchemy import text

from promptory.db import create_engine_from_url
from promptory.engine.errors import (
    ConfigValidationError,
    DuplicateResourceError,
    NotFoundError,
    PathTraversalError,
)
from promptory.engine.llm_storage import LLMStorageService
from promptory.schemas.llm import LLMResponseMetadata, TitleGenerationConfig, TokenUsage
from promptory.schemas.provider import OllamaProviderConfig, OpenAIProviderConfig

PROMPT_ID = "prompt-1234abcd"


def _metadata(response_id: str, created_at: datetime | None = None, **kwargs) -> LLMResponseMetadata:
    fields = dict(
        id=response_id,
        prompt_id=PROMPT_ID,
        provider="ollama",
        model="gemma3",
        created_at=created_at or datetime(2026, 1, 1, 12, 0, 0),
        status="completed",
        response_time_ms=420,
        token_usage=TokenUsage(prompt=3, completion=4, total=7),
    )
    fields.update(kwargs)
    return LLMResponseMetadata(**fields)


async def _store(storage: LLMStorageService, meta: LLMResponseMetadata, body: str = "body") -> LLMResponseMetadata:
    meta.file_path = await storage.save_response_content(
        meta.prompt_id, "My Prompt", meta.id, body, meta, "Write {{thing}}\nplease"
    )
    await storage.save_response_metadata(meta)
    return meta


def _files(storage: LLMStorageService) -> list:
    return [p for p in storage.results_dir.rglob("*") if p.is_file()]


# ── Content files ───────────────────────────────────


async def test_content_round_trip(storage):
    meta = await _store(storage, _metadata("r1"), "TESTING 123\n\nsecond paragraph")
    assert meta.file_path == "My Prompt_1234abcd/r1.md"
    assert await storage.get_response_content(meta.file_path) == "TESTING 123\n\nsecond paragraph"

    fm = await storage.read_front_matter(meta.file_path)
    assert fm["id"] == "r1"
    assert fm["prompt"] == "Write {{thing}}\nplease"
    assert fm["token_usage"] == {"prompt": 3, "completion": 4, "total": 7}
    assert fm["schema_version"] == 2
    # Optional groups are omitted, not written as null
    assert "generated_title" not in fm
    assert "title_generation_status" not in fm
    assert "error_code" not in fm


async def test_line_endings_preserved(storage):
    body = "a\r\nb\rc\n"
    meta = await _store(storage, _metadata("r1"), body)
    assert await storage.get_response_content(meta.file_path) == body

    await storage.update_response_title("r1", "completed", "Title")
    assert await storage.get_response_content(meta.file_path) == body


async def test_prompt_is_written_as_literal_block(storage):
    meta = await _store(storage, _metadata("r1"))
    raw = (storage.results_dir / meta.file_path).read_text(encoding="utf-8")
    assert raw.startswith("---\n")
    assert "prompt: |" in raw
    assert raw.endswith("---\n\nbody")


async def test_collision_gets_suffix(storage):
    first = await storage.save_response_content(PROMPT_ID, "P", "same", "one", _metadata("same"))
    second = await storage.save_response_content(PROMPT_ID, "P", "same", "two", _metadata("same"))
    assert first != second
    assert second.endswith("same-1.md")
    assert await storage.get_response_content(first) == "one"
    assert await storage.get_response_content(second) == "two"


@pytest.mark.parametrize("prompt_name, response_id", [
    ("../../etc", "r1"),
    ("ok", "../r1"),
    ("ok", "a/b"),
])
async def test_traversal_rejected_before_io(storage, prompt_name, response_id):
    before = _files(storage)
    with pytest.raises(PathTraversalError):
        await storage.save_response_content(PROMPT_ID, prompt_name, response_id, "x", _metadata("r1"))
    assert _files(storage) == before
    assert not (storage.results_dir.parent / "etc").exists()


async def test_missing_file_is_not_found(storage):
    with pytest.raises(NotFoundError):
        await storage.get_response_content("nope/missing.md")


async def test_file_without_front_matter_returns_raw_text(storage):
    folder = storage.results_dir / "legacy"
    folder.mkdir()
    (folder / "old.md").write_text("just text\n---\nnot yaml", encoding="utf-8")
    assert await storage.get_response_content("legacy/old.md") == "just text\n---\nnot yaml"
    assert await storage.read_front_matter("legacy/old.md") == {}


# ── Metadata rows ───────────────────────────────────


async def test_history_newest_first(storage):
    base = datetime(2026, 1, 1)
    await _store(storage, _metadata("old", created_at=base))
    await _store(storage, _metadata("new", created_at=base + timedelta(minutes=5)))
    await _store(storage, _metadata("mid", created_at=base + timedelta(minutes=1)))
    history = await storage.list_response_metadata(PROMPT_ID)
    assert [m.id for m in history] == ["new", "mid", "old"]
    assert history[0].token_usage.total == 7
    assert history[0].title is None


async def test_orphans_are_flagged_then_cleaned(storage):
    meta = await _store(storage, _metadata("r1"))
    (storage.results_dir / meta.file_path).unlink()

    history = await storage.list_response_metadata(PROMPT_ID)
    assert len(history) == 1
    assert history[0].orphaned

    assert await storage.cleanup_orphaned_entries() == 1
    assert await storage.list_response_metadata(PROMPT_ID) == []


async def test_cancelled_rows_without_file_are_not_orphans(storage):
    await storage.save_response_metadata(_metadata("c1", status="cancelled", error_code="CANCELLED"))
    assert await storage.cleanup_orphaned_entries() == 0
    meta = await storage.get_response_metadata("c1")
    assert meta.status == "cancelled"
    assert not meta.orphaned


async def test_delete_removes_row_and_file(storage):
    meta = await _store(storage, _metadata("r1"))
    path = storage.results_dir / meta.file_path
    assert path.exists()
    assert await storage.delete_response("r1") is True
    assert not path.exists()
    assert await storage.get_response_metadata("r1") is None
    assert await storage.delete_response("r1") is False


async def test_delete_tolerates_missing_file(storage):
    meta = await _store(storage, _metadata("r1"))
    (storage.results_dir / meta.file_path).unlink()
    assert await storage.delete_response("r1") is True
    assert await storage.get_response_metadata("r1") is None


async def test_delete_all_for_prompt(storage):
    await _store(storage, _metadata("a"))
    await _store(storage, _metadata("b"))
    await _store(storage, _metadata("other", prompt_id="prompt-other000"))
    assert await storage.delete_all_responses(PROMPT_ID) == 2
    assert await storage.list_response_metadata(PROMPT_ID) == []
    assert await storage.get_response_metadata("other") is not None


async def test_update_status(storage):
    await _store(storage, _metadata("r1"))
    await storage.update_response_status("r1", "failed", "TIMEOUT_ERROR", "too slow")
    meta = await storage.get_response_metadata("r1")
    assert meta.status == "failed"
    assert meta.error_code == "TIMEOUT_ERROR"
    with pytest.raises(NotFoundError):
        await storage.update_response_status("missing", "failed")


async def test_update_title_rewrites_front_matter(storage):
    meta = await _store(storage, _metadata("r1"), "content stays")
    generated_at = datetime(2026, 1, 1, 12, 30)
    await storage.update_response_title("r1", "completed", "A Fine Title", "gemma3:1b", generated_at)

    row = await storage.get_response_metadata("r1")
    assert row.title.status == "completed"
    assert row.title.generated_title == "A Fine Title"
    assert row.title.model == "gemma3:1b"

    fm = await storage.read_front_matter(meta.file_path)
    assert fm["generated_title"] == "A Fine Title"
    assert fm["title_generation_status"] == "completed"
    assert fm["prompt"] == "Write {{thing}}\nplease"
    assert await storage.get_response_content(meta.file_path) == "content stays"

    await storage.update_response_title("r1", "failed")
    fm = await storage.read_front_matter(meta.file_path)
    assert fm["title_generation_status"] == "failed"
    assert "generated_title" not in fm


async def test_initialize_cancels_interrupted_requests(storage):
    await storage.save_response_metadata(_metadata("p1", status="processing"))
    await storage.save_response_metadata(_metadata("p2", status="pending"))
    await storage.initialize()
    assert (await storage.get_response_metadata("p1")).status == "cancelled"
    assert (await storage.get_response_metadata("p2")).status == "cancelled"


async def test_initialize_adds_title_columns_to_old_database(tmp_path):
    engine = create_engine_from_url(f"sqlite+aiosqlite:///{tmp_path / 'old.db'}")
    async with engine.begin() as conn:
        await conn.execute(text(
            "CREATE TABLE llm_responses ("
            "id VARCHAR(36) PRIMARY KEY, prompt_id VARCHAR(128) NOT NULL, "
            "provider VARCHAR(32) NOT NULL, model VARCHAR(128) NOT NULL, parameters JSON, "
            "created_at DATETIME, response_time_ms INTEGER, token_usage_prompt INTEGER, "
            "token_usage_completion INTEGER, token_usage_total INTEGER, cost_estimate FLOAT, "
            "status VARCHAR(16) NOT NULL, file_path TEXT, error_code VARCHAR(32), error_message TEXT)"
        ))
    storage = LLMStorageService(engine, tmp_path / "results")
    await storage.initialize()
    await storage.save_response_metadata(_metadata("r1", status="failed"))
    await storage.update_response_title("r1", "failed")
    assert (await storage.get_response_metadata("r1")).title.status == "failed"
    await storage.close()


# ── Provider configurations ─────────────────────────


async def test_single_active_provider(storage):
    ollama = await storage.save_provider_config(OllamaProviderConfig(display_name="Local", is_active=True))
    openai = await storage.save_provider_config(
        OpenAIProviderConfig(display_name="OpenAI"), encrypted_credentials=b"token"
    )
    assert (await storage.get_active_provider_config()).id == ollama.id

    await storage.set_active_provider(openai.id)
    configs = await storage.list_provider_configs()
    assert [c.id for c in configs if c.is_active] == [openai.id]
    assert (await storage.get_active_provider_config()).provider_type == "openai"


async def test_duplicate_provider_type_rejected(storage):
    await storage.save_provider_config(OllamaProviderConfig(display_name="One"))
    with pytest.raises(DuplicateResourceError):
        await storage.save_provider_config(OllamaProviderConfig(display_name="Two"))


async def test_update_existing_provider_keeps_credentials(storage):
    saved = await storage.save_provider_config(
        OpenAIProviderConfig(display_name="OpenAI", model_name="gpt-4"), encrypted_credentials=b"token"
    )
    await storage.mark_provider_validated(saved.id)
    updated = await storage.save_provider_config(
        OpenAIProviderConfig(id=saved.id, display_name="Renamed", model_name="gpt-4o")
    )
    assert updated.display_name == "Renamed"
    assert updated.has_credentials
    assert updated.encrypted_credentials == b"token"
    # Endpoint and key unchanged, so the validation stamp survives
    assert updated.last_validated_at is not None


async def test_set_active_missing_provider(storage):
    with pytest.raises(NotFoundError):
        await storage.set_active_provider("missing")


async def test_delete_provider(storage):
    saved = await storage.save_provider_config(OllamaProviderConfig(display_name="Local"))
    assert await storage.delete_provider_config(saved.id)
    assert await storage.get_provider_config(saved.id) is None
    assert not await storage.delete_provider_config(saved.id)


# ── Title config ────────────────────────────────────


async def test_title_config_defaults_and_update(storage):
    cfg = await storage.get_title_generation_config()
    assert cfg.selected_model == "gemma3:1b"
    assert cfg.timeout_seconds == 30

    saved = await storage.update_title_generation_config(
        TitleGenerationConfig(enabled=False, selected_model="llama2", selected_provider="ollama", timeout_seconds=60)
    )
    assert saved.enabled is False
    assert (await storage.get_title_generation_config()).timeout_seconds == 60


@pytest.mark.parametrize("timeout", [5, 121])
async def test_title_config_timeout_range(storage, timeout):
    with pytest.raises(ConfigValidationError):
        await storage.update_title_generation_config(
            TitleGenerationConfig(selected_model="gemma3:1b", timeout_seconds=timeout)
        )
