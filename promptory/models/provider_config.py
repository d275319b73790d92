"""Provider configuration model — one row per configured LLM backend."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, DateTime, Index, Integer, LargeBinary, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from promptory.db import Base, utcnow


class ProviderConfiguration(Base):
    __tablename__ = "provider_configurations"
    __table_args__ = (
        CheckConstraint(
            "provider_type IN ('ollama', 'openai', 'azure_openai', 'gemini')",
            name="ck_provider_type",
        ),
        Index("idx_provider_active", "is_active"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    provider_type: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    display_name: Mapped[str] = mapped_column(String(128), nullable=False)
    base_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    model_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    # Only used by azure_openai
    api_version: Mapped[str | None] = mapped_column(String(32), nullable=True)
    # Fernet token, never the plaintext key
    encrypted_credentials: Mapped[bytes | None] = mapped_column(LargeBinary, nullable=True)
    timeout_seconds: Mapped[int] = mapped_column(Integer, default=120)
    is_active: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)
    last_validated_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
