"""
GenerationLog model - append-only cost ledger.
One row per finished or failed generation, read by budget checks and stats.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import String, Text, Integer, Float, DateTime, Index
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from autoblog.database import Base


class GenerationLog(Base):
    __tablename__ = "generation_logs"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    job_id: Mapped[Optional[str]] = mapped_column(String(64))
    content_ref: Mapped[Optional[str]] = mapped_column(String(64))
    model_used: Mapped[str] = mapped_column(String(50), nullable=False)
    prompt_tokens: Mapped[int] = mapped_column(Integer, default=0)
    completion_tokens: Mapped[int] = mapped_column(Integer, default=0)
    total_tokens: Mapped[int] = mapped_column(Integer, default=0)
    cost_usd: Mapped[float] = mapped_column(Float, default=0.0)
    image_cost_usd: Mapped[float] = mapped_column(Float, default=0.0)
    generation_time: Mapped[float] = mapped_column(Float, default=0.0)  # seconds
    topic_source: Mapped[str] = mapped_column(String(20), default="manual")
    status: Mapped[str] = mapped_column(
        String(20), default="success", nullable=False
    )  # success, failed
    error_message: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    __table_args__ = (
        Index("ix_generation_logs_created", "created_at"),
        Index("ix_generation_logs_status", "status"),
    )

    def __repr__(self) -> str:
        return f"<GenerationLog {self.model_used} ${self.cost_usd + self.image_cost_usd:.4f} ({self.status})>"
