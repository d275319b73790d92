"""Hybrid storage for LLM responses.

Metadata lives in SQLite (via async SQLAlchemy); response bodies live in a
markdown tree under ``results_dir``, one file per response:

    <sanitized prompt name>_<id8>/<response id>.md

The content file is always written before its metadata row commits, so a
crash in between leaves an unreferenced file rather than a row pointing at
nothing. Rows whose file has gone missing are "orphaned" and are reported
as metadata without content.
"""

from __future__ import annotations

import asyncio
import logging
import os
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any

from sqlalchemy import delete, inspect, select, text, update
from sqlalchemy.ext.asyncio import AsyncEngine

import promptory.models  # noqa: F401 – register all models
from promptory.config import settings
from promptory.db import Base, create_session_factory, utcnow
from promptory.engine import front_matter
from promptory.engine.errors import ConfigValidationError, DuplicateResourceError, NotFoundError
from promptory.engine.path_safety import ensure_safe_identifier, resolve_within, sanitize_prompt_name
from promptory.models import LLMResponseRecord, ProviderConfiguration, TitleGenerationSettings
from promptory.models.llm_response import TITLE_COLUMNS
from promptory.schemas.llm import (
    LLMResponseMetadata,
    RequestStatus,
    TitleGenerationConfig,
    TitleInfo,
    TitleStatus,
    TokenUsage,
)
from promptory.schemas.provider import ProviderConfig, provider_config_adapter

logger = logging.getLogger(__name__)

TITLE_TIMEOUT_RANGE = (10, 120)


class LLMStorageService:
    def __init__(self, engine: AsyncEngine, results_dir: str | Path):
        self._engine = engine
        self._session = create_session_factory(engine)
        self.results_dir = Path(results_dir)

    async def initialize(self, cleanup_orphans: bool = True) -> None:
        """Create tables, migrate older databases and recover from an unclean exit."""
        self.results_dir.mkdir(parents=True, exist_ok=True)
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
            existing = await conn.run_sync(
                lambda sync_conn: {c["name"] for c in inspect(sync_conn).get_columns("llm_responses")}
            )
            for column, ddl_type in TITLE_COLUMNS.items():
                if column not in existing:
                    logger.info(f"Migrating llm_responses: adding column {column}")
                    await conn.execute(text(f"ALTER TABLE llm_responses ADD COLUMN {column} {ddl_type}"))

        cancelled = await self.mark_pending_as_cancelled()
        if cancelled:
            logger.info(f"Marked {cancelled} interrupted request(s) as cancelled")
        if cleanup_orphans:
            removed = await self.cleanup_orphaned_entries()
            if removed:
                logger.info(f"Removed {removed} orphaned response record(s)")

    async def close(self) -> None:
        await self._engine.dispose()

    # ── Provider configurations ─────────────────────

    @staticmethod
    def _to_provider_config(row: ProviderConfiguration) -> ProviderConfig:
        data = {
            "id": row.id,
            "provider_type": row.provider_type,
            "display_name": row.display_name,
            "base_url": row.base_url,
            "model_name": row.model_name,
            "api_version": row.api_version,
            "timeout_seconds": row.timeout_seconds,
            "is_active": row.is_active,
            "created_at": row.created_at,
            "updated_at": row.updated_at,
            "last_validated_at": row.last_validated_at,
            "encrypted_credentials": row.encrypted_credentials,
        }
        # Variants that lack a field fall back to their own defaults
        return provider_config_adapter.validate_python({k: v for k, v in data.items() if v is not None})

    async def save_provider_config(
        self,
        config: ProviderConfig,
        encrypted_credentials: bytes | None = None,
    ) -> ProviderConfig:
        """Insert or update a provider configuration.

        ``encrypted_credentials=None`` keeps whatever credential is stored.
        Changing the endpoint or the credential clears the validation stamp.
        """
        async with self._session() as db:
            async with db.begin():
                same_type = (await db.execute(
                    select(ProviderConfiguration).where(
                        ProviderConfiguration.provider_type == config.provider_type
                    )
                )).scalar_one_or_none()

                row = await db.get(ProviderConfiguration, config.id) if config.id else None
                if same_type is not None and (row is None or same_type.id != row.id):
                    raise DuplicateResourceError(
                        f"A {config.provider_type} provider is already configured"
                    )
                if row is not None and row.provider_type != config.provider_type:
                    raise DuplicateResourceError("Provider type of an existing configuration cannot change")

                base_url = getattr(config, "base_url", None)
                if row is None:
                    row = ProviderConfiguration(
                        id=config.id or str(uuid.uuid4()),
                        provider_type=config.provider_type,
                    )
                    db.add(row)
                elif row.base_url != base_url or encrypted_credentials is not None:
                    row.last_validated_at = None

                row.display_name = config.display_name
                row.base_url = base_url
                row.model_name = config.model_name
                row.api_version = getattr(config, "api_version", None)
                row.timeout_seconds = config.timeout_seconds
                if encrypted_credentials is not None:
                    row.encrypted_credentials = encrypted_credentials
                if config.is_active:
                    await db.execute(
                        update(ProviderConfiguration)
                        .where(ProviderConfiguration.id != row.id)
                        .values(is_active=False)
                    )
                row.is_active = config.is_active
                row.updated_at = utcnow()
            await db.refresh(row)
            logger.info(f"Saved provider config {row.id} ({row.provider_type})")
            return self._to_provider_config(row)

    async def get_provider_config(self, config_id: str) -> ProviderConfig | None:
        async with self._session() as db:
            row = await db.get(ProviderConfiguration, config_id)
            return self._to_provider_config(row) if row else None

    async def get_provider_config_by_type(self, provider_type: str) -> ProviderConfig | None:
        async with self._session() as db:
            row = (await db.execute(
                select(ProviderConfiguration).where(ProviderConfiguration.provider_type == provider_type)
            )).scalar_one_or_none()
            return self._to_provider_config(row) if row else None

    async def list_provider_configs(self) -> list[ProviderConfig]:
        async with self._session() as db:
            rows = (await db.execute(
                select(ProviderConfiguration).order_by(ProviderConfiguration.created_at.desc())
            )).scalars().all()
            return [self._to_provider_config(r) for r in rows]

    async def get_active_provider_config(self) -> ProviderConfig | None:
        async with self._session() as db:
            row = (await db.execute(
                select(ProviderConfiguration).where(ProviderConfiguration.is_active.is_(True)).limit(1)
            )).scalar_one_or_none()
            return self._to_provider_config(row) if row else None

    async def set_active_provider(self, config_id: str) -> ProviderConfig:
        """Activate one provider and deactivate every other in the same transaction."""
        async with self._session() as db:
            async with db.begin():
                row = await db.get(ProviderConfiguration, config_id)
                if row is None:
                    raise NotFoundError("Provider configuration", config_id)
                await db.execute(
                    update(ProviderConfiguration)
                    .where(ProviderConfiguration.id != config_id)
                    .values(is_active=False)
                )
                row.is_active = True
                row.updated_at = utcnow()
            await db.refresh(row)
            logger.info(f"Active provider is now {row.provider_type} ({row.id})")
            return self._to_provider_config(row)

    async def mark_provider_validated(self, config_id: str, when: datetime | None = None) -> None:
        async with self._session() as db:
            result = await db.execute(
                update(ProviderConfiguration)
                .where(ProviderConfiguration.id == config_id)
                .values(last_validated_at=when or utcnow())
            )
            await db.commit()
            if result.rowcount == 0:
                raise NotFoundError("Provider configuration", config_id)

    async def delete_provider_config(self, config_id: str) -> bool:
        async with self._session() as db:
            result = await db.execute(
                delete(ProviderConfiguration).where(ProviderConfiguration.id == config_id)
            )
            await db.commit()
            return result.rowcount > 0

    # ── Response metadata ───────────────────────────

    def _file_exists(self, relative: str | None) -> bool:
        if not relative:
            return False
        return resolve_within(self.results_dir, relative).is_file()

    def _to_metadata(self, row: LLMResponseRecord) -> LLMResponseMetadata:
        token_usage = None
        if row.token_usage_total is not None:
            token_usage = TokenUsage(
                prompt=row.token_usage_prompt or 0,
                completion=row.token_usage_completion or 0,
                total=row.token_usage_total,
            )
        title = None
        if row.title_generation_status:
            title = TitleInfo(
                status=row.title_generation_status,
                generated_title=row.generated_title,
                generated_at=row.title_generated_at,
                model=row.title_model,
            )
        return LLMResponseMetadata(
            id=row.id,
            prompt_id=row.prompt_id,
            provider=row.provider,
            model=row.model,
            parameters=row.parameters or {},
            created_at=row.created_at,
            status=row.status,
            file_path=row.file_path,
            response_time_ms=row.response_time_ms,
            token_usage=token_usage,
            cost_estimate=row.cost_estimate,
            error_code=row.error_code,
            error_message=row.error_message,
            title=title,
            orphaned=bool(row.file_path) and not self._file_exists(row.file_path),
        )

    async def save_response_metadata(self, metadata: LLMResponseMetadata) -> None:
        usage = metadata.token_usage
        title = metadata.title
        row = LLMResponseRecord(
            id=metadata.id,
            prompt_id=metadata.prompt_id,
            provider=metadata.provider,
            model=metadata.model,
            parameters=dict(metadata.parameters),
            created_at=metadata.created_at,
            response_time_ms=metadata.response_time_ms,
            token_usage_prompt=usage.prompt if usage else None,
            token_usage_completion=usage.completion if usage else None,
            token_usage_total=usage.total if usage else None,
            cost_estimate=metadata.cost_estimate,
            status=metadata.status,
            file_path=metadata.file_path,
            error_code=metadata.error_code,
            error_message=metadata.error_message,
            generated_title=title.generated_title if title else None,
            title_generation_status=title.status if title else None,
            title_generated_at=title.generated_at if title else None,
            title_model=title.model if title else None,
        )
        async with self._session() as db:
            await db.merge(row)
            await db.commit()

    async def get_response_metadata(self, response_id: str) -> LLMResponseMetadata | None:
        async with self._session() as db:
            row = await db.get(LLMResponseRecord, response_id)
            return self._to_metadata(row) if row else None

    async def list_response_metadata(self, prompt_id: str) -> list[LLMResponseMetadata]:
        """Newest first; rows whose file is missing come back flagged as orphaned."""
        async with self._session() as db:
            rows = (await db.execute(
                select(LLMResponseRecord)
                .where(LLMResponseRecord.prompt_id == prompt_id)
                .order_by(LLMResponseRecord.created_at.desc())
            )).scalars().all()
        entries = [self._to_metadata(r) for r in rows]
        orphaned = sum(1 for e in entries if e.orphaned)
        if orphaned:
            logger.warning(f"{orphaned} orphaned response record(s) for prompt {prompt_id}")
        return entries

    async def update_response_status(
        self,
        response_id: str,
        status: RequestStatus,
        error_code: str | None = None,
        error_message: str | None = None,
    ) -> None:
        async with self._session() as db:
            result = await db.execute(
                update(LLMResponseRecord)
                .where(LLMResponseRecord.id == response_id)
                .values(status=status, error_code=error_code, error_message=error_message)
            )
            await db.commit()
            if result.rowcount == 0:
                raise NotFoundError("Response", response_id)

    async def update_response_title(
        self,
        response_id: str,
        status: TitleStatus,
        title: str | None = None,
        model: str | None = None,
        generated_at: datetime | None = None,
    ) -> None:
        """Update the title group on the row and in the file's front-matter."""
        async with self._session() as db:
            row = await db.get(LLMResponseRecord, response_id)
            if row is None:
                raise NotFoundError("Response", response_id)
            row.title_generation_status = status
            row.generated_title = title
            row.title_generated_at = generated_at
            row.title_model = model
            await db.commit()
            file_path = row.file_path

        if file_path and self._file_exists(file_path):
            await asyncio.to_thread(
                self._rewrite_title_fields,
                resolve_within(self.results_dir, file_path),
                front_matter.title_fields(status, title, generated_at, model),
            )

    def _rewrite_title_fields(self, target: Path, fields: dict[str, Any]) -> None:
        fm, body = front_matter.parse(target.read_bytes().decode("utf-8"))
        for key in ("generated_title", "title_generation_status", "title_generated_at", "title_model"):
            fm.pop(key, None)
        fm.update(fields)
        _atomic_write(target, front_matter.render(fm, body))

    async def mark_pending_as_cancelled(self) -> int:
        async with self._session() as db:
            result = await db.execute(
                update(LLMResponseRecord)
                .where(LLMResponseRecord.status.in_(("pending", "processing")))
                .values(status="cancelled")
            )
            await db.commit()
            return result.rowcount

    async def cleanup_orphaned_entries(self) -> int:
        """Delete rows that reference a content file which no longer exists."""
        async with self._session() as db:
            rows = (await db.execute(
                select(LLMResponseRecord.id, LLMResponseRecord.file_path)
                .where(LLMResponseRecord.file_path.is_not(None))
            )).all()
            orphan_ids = [r.id for r in rows if not self._file_exists(r.file_path)]
            if orphan_ids:
                await db.execute(delete(LLMResponseRecord).where(LLMResponseRecord.id.in_(orphan_ids)))
                await db.commit()
            return len(orphan_ids)

    async def delete_response(self, response_id: str) -> bool:
        """Delete the row and its content file; a missing file is fine."""
        async with self._session() as db:
            row = await db.get(LLMResponseRecord, response_id)
            if row is None:
                return False
            if row.file_path:
                target = resolve_within(self.results_dir, row.file_path)
                await asyncio.to_thread(target.unlink, missing_ok=True)
            await db.delete(row)
            await db.commit()
        logger.info(f"Deleted response {response_id}")
        return True

    async def delete_all_responses(self, prompt_id: str) -> int:
        async with self._session() as db:
            ids = (await db.execute(
                select(LLMResponseRecord.id).where(LLMResponseRecord.prompt_id == prompt_id)
            )).scalars().all()
        count = 0
        for response_id in ids:
            if await self.delete_response(response_id):
                count += 1
        return count

    # ── Response content ────────────────────────────

    async def save_response_content(
        self,
        prompt_id: str,
        prompt_name: str,
        response_id: str,
        content: str,
        metadata: LLMResponseMetadata,
        prompt_content: str | None = None,
    ) -> str:
        """Write the response file and return the relative path actually used."""
        ensure_safe_identifier(response_id, "response id")
        ensure_safe_identifier(prompt_id, "prompt id")
        directory = sanitize_prompt_name(prompt_name, prompt_id)
        # Validate the final location before touching the disk
        resolve_within(self.results_dir, f"{directory}/{response_id}.md")

        document = front_matter.render(front_matter.build_front_matter(metadata, prompt_content), content)
        return await asyncio.to_thread(self._write_new_file, directory, response_id, document)

    def _write_new_file(self, directory: str, response_id: str, document: str) -> str:
        folder = resolve_within(self.results_dir, directory)
        folder.mkdir(parents=True, exist_ok=True)
        relative = f"{directory}/{response_id}.md"
        suffix = 1
        while resolve_within(self.results_dir, relative).exists():
            relative = f"{directory}/{response_id}-{suffix}.md"
            suffix += 1
        _atomic_write(resolve_within(self.results_dir, relative), document)
        return relative

    async def _read(self, relative: str) -> str:
        target = resolve_within(self.results_dir, relative)
        try:
            raw = await asyncio.to_thread(target.read_bytes)
        except FileNotFoundError:
            raise NotFoundError("Response file", relative) from None
        # Bytes, not text mode, so CR and CRLF in the body survive
        return raw.decode("utf-8")

    async def get_response_content(self, relative: str) -> str:
        """Response body; files without parseable front-matter are returned whole."""
        _, body = front_matter.parse(await self._read(relative))
        return body

    async def read_front_matter(self, relative: str) -> dict[str, Any]:
        fm, _ = front_matter.parse(await self._read(relative))
        return fm

    # ── Title generation config ─────────────────────

    async def get_title_generation_config(self) -> TitleGenerationConfig:
        async with self._session() as db:
            row = await db.get(TitleGenerationSettings, 1)
        if row is None:
            return TitleGenerationConfig(
                enabled=settings.title_enabled,
                selected_model=settings.title_model,
                selected_provider=settings.title_provider,
                timeout_seconds=settings.title_timeout_seconds,
            )
        return TitleGenerationConfig(
            enabled=row.enabled,
            selected_model=row.selected_model,
            selected_provider=row.selected_provider,
            timeout_seconds=row.timeout_seconds,
        )

    async def update_title_generation_config(self, config: TitleGenerationConfig) -> TitleGenerationConfig:
        low, high = TITLE_TIMEOUT_RANGE
        if not low <= config.timeout_seconds <= high:
            raise ConfigValidationError(f"Title timeout must be between {low} and {high} seconds")
        if not config.selected_model.strip():
            raise ConfigValidationError("Title model must not be empty")

        async with self._session() as db:
            row = await db.get(TitleGenerationSettings, 1)
            if row is None:
                row = TitleGenerationSettings(id=1)
                db.add(row)
            row.enabled = config.enabled
            row.selected_model = config.selected_model.strip()
            row.selected_provider = config.selected_provider
            row.timeout_seconds = config.timeout_seconds
            row.updated_at = utcnow()
            await db.commit()
        logger.info(
            f"Title generation: enabled={config.enabled} "
            f"{config.selected_provider}/{config.selected_model} timeout={config.timeout_seconds}s"
        )
        return await self.get_title_generation_config()


def _atomic_write(target: Path, document: str) -> None:
    tmp = target.with_name(f".{target.name}.tmp")
    tmp.write_text(document, encoding="utf-8", newline="")
    os.replace(tmp, target)
