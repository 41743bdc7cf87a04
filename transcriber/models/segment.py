"""
Transcription Segment Model

One time-bounded slice of a task's source file, transcribed independently.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from transcriber.models.base import Base, TimestampMixin


class TranscriptionSegment(Base, TimestampMixin):
    __tablename__ = "segments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    task_id: Mapped[str] = mapped_column(ForeignKey("tasks.id", ondelete="CASCADE"), index=True)

    # Temporal info (seconds from the start of the source)
    start_time: Mapped[float] = mapped_column(Float, nullable=False)
    end_time: Mapped[float] = mapped_column(Float, nullable=False)

    status: Mapped[str] = mapped_column(String(20), default="pending", index=True)  # pending, processing, completed, failed
    file_path: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)

    # Provider
    correlation_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True, unique=True)
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Content
    transcription_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    language: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Relationships
    task: Mapped["TranscriptionTask"] = relationship(back_populates="segments")

    __table_args__ = (
        CheckConstraint("start_time >= 0 AND start_time < end_time", name="valid_time_range"),
        Index("idx_segments_status_updated", "status", "updated_at"),
    )
