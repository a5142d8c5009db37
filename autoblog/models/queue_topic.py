"""
QueueTopic model - the priority queue of topics waiting to become posts.
Ownership of a row in "processing" is only ever granted by the conditional
pending -> processing update in services/queue.py, which stamps the row with
a fresh claim_token. Only the holder of that token can release the row.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import String, Text, Integer, DateTime, Index
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from autoblog.database import Base


class QueueTopic(Base):
    __tablename__ = "topics"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    topic: Mapped[str] = mapped_column(String(500), nullable=False)
    keywords: Mapped[Optional[str]] = mapped_column(Text)
    category_id: Mapped[Optional[int]] = mapped_column(Integer)
    source: Mapped[str] = mapped_column(
        String(20), default="manual", nullable=False
    )  # manual, import, trending
    status: Mapped[str] = mapped_column(
        String(20), default="pending", nullable=False
    )  # pending, processing, completed, failed
    priority: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_error: Mapped[Optional[str]] = mapped_column(Text)
    content_ref: Mapped[Optional[str]] = mapped_column(String(64))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    locked_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    claim_token: Mapped[Optional[str]] = mapped_column(String(32))  # Set per claim, cleared on release

    __table_args__ = (
        Index("ix_topics_claim", "status", "priority", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<QueueTopic {self.topic[:40]} ({self.status}, attempts={self.attempts})>"
