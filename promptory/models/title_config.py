"""Title generation configuration, stored as a singleton row (id is always 1)."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from promptory.db import Base, utcnow


class TitleGenerationSettings(Base):
    __tablename__ = "title_generation_config"
    __table_args__ = (CheckConstraint("id = 1", name="ck_title_config_singleton"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=1)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    selected_model: Mapped[str] = mapped_column(String(128), nullable=False)
    selected_provider: Mapped[str] = mapped_column(String(32), nullable=False)
    timeout_seconds: Mapped[int] = mapped_column(Integer, default=30)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)
