"""
Transcription Task Model

One end-to-end transcription request for a single source file.
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import CheckConstraint, DateTime, Float, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from transcriber.models.base import Base, TimestampMixin


class TranscriptionTask(Base, TimestampMixin):
    __tablename__ = "tasks"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    status: Mapped[str] = mapped_column(String(20), default="processing", index=True)  # processing, completed, failed

    original_filename: Mapped[str] = mapped_column(String(255), nullable=False)
    client_webhook_url: Mapped[Optional[str]] = mapped_column(String(2048), nullable=True)
    source_path: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    estimated_duration: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    # Progress
    total_segments: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    completed_segments: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Result
    final_transcript: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    language: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    webhook_status: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)  # delivered, failed, skipped

    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cleaned_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Relationships
    segments: Mapped[List["TranscriptionSegment"]] = relationship(
        back_populates="task",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="TranscriptionSegment.start_time",
    )

    __table_args__ = (
        CheckConstraint("completed_segments <= total_segments", name="completed_within_total"),
        Index("idx_tasks_status_completed_at", "status", "completed_at"),
    )
