"""LLM response metadata model — the content itself lives in a markdown file."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Float, Index, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from promptory.db import Base, utcnow


class LLMResponseRecord(Base):
    __tablename__ = "llm_responses"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed', 'cancelled')",
            name="ck_llm_response_status",
        ),
        Index("idx_llm_responses_prompt_id", "prompt_id"),
        Index("idx_llm_responses_created_at", "created_at"),
        Index("idx_llm_responses_status", "status"),
        Index("idx_llm_responses_title_status", "title_generation_status"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    prompt_id: Mapped[str] = mapped_column(String(128), nullable=False)
    provider: Mapped[str] = mapped_column(String(32), nullable=False)
    model: Mapped[str] = mapped_column(String(128), nullable=False)
    parameters: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    response_time_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    token_usage_prompt: Mapped[int | None] = mapped_column(Integer, nullable=True)
    token_usage_completion: Mapped[int | None] = mapped_column(Integer, nullable=True)
    token_usage_total: Mapped[int | None] = mapped_column(Integer, nullable=True)
    cost_estimate: Mapped[float | None] = mapped_column(Float, nullable=True)
    # pending | processing | completed | failed | cancelled
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    # Relative to the results dir; NULL for cancelled requests that produced no content
    file_path: Mapped[str | None] = mapped_column(Text, nullable=True)
    error_code: Mapped[str | None] = mapped_column(String(32), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Title generation, added after the first release
    generated_title: Mapped[str | None] = mapped_column(Text, nullable=True)
    title_generation_status: Mapped[str | None] = mapped_column(String(16), nullable=True)
    title_generated_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    title_model: Mapped[str | None] = mapped_column(String(128), nullable=True)


# Columns an older database may lack, with the DDL type used to add them
TITLE_COLUMNS: dict[str, str] = {
    "generated_title": "TEXT",
    "title_generation_status": "VARCHAR(16)",
    "title_generated_at": "DATETIME",
    "title_model": "VARCHAR(128)",
}
