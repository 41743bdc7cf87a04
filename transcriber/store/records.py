"""
Task and segment records

Plain data handed between the store and the orchestration services, so the
services never depend on a particular storage engine.
"""

import uuid
from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from transcriber.core.time import utcnow


class TaskStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class SegmentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (SegmentStatus.COMPLETED, SegmentStatus.FAILED)


TERMINAL_TASK_STATUSES = (TaskStatus.COMPLETED, TaskStatus.FAILED)
ACTIVE_SEGMENT_STATUSES = (SegmentStatus.PENDING, SegmentStatus.PROCESSING)


def new_id() -> str:
    return str(uuid.uuid4())


@dataclass
class TaskRecord:
    original_filename: str
    id: str = field(default_factory=new_id)
    status: TaskStatus = TaskStatus.PROCESSING
    client_webhook_url: Optional[str] = None
    source_path: Optional[str] = None
    estimated_duration: Optional[float] = None
    total_segments: int = 0
    completed_segments: int = 0
    final_transcript: Optional[str] = None
    language: Optional[str] = None
    error_message: Optional[str] = None
    webhook_status: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    cleaned_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_TASK_STATUSES

    @property
    def progress_percentage(self) -> int:
        if self.total_segments <= 0:
            return 0
        return round(self.completed_segments * 100 / self.total_segments)


@dataclass
class SegmentRecord:
    task_id: str
    start_time: float
    end_time: float
    id: str = field(default_factory=new_id)
    status: SegmentStatus = SegmentStatus.PENDING
    file_path: Optional[str] = None
    correlation_id: Optional[str] = None
    attempts: int = 0
    transcription_text: Optional[str] = None
    language: Optional[str] = None
    error_message: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time


TASK_FIELDS = frozenset(f.name for f in fields(TaskRecord))
SEGMENT_FIELDS = frozenset(f.name for f in fields(SegmentRecord))


def check_changes(allowed: frozenset, changes: dict[str, Any]) -> None:
    unknown = set(changes) - allowed
    if unknown:
        raise ValueError(f"Unknown fields: {', '.join(sorted(unknown))}")
    if "id" in changes:
        raise ValueError("Record ids are immutable")


def apply_changes(record, changes: dict[str, Any]):
    return replace(record, **changes)
