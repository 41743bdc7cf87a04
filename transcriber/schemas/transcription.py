"""
Transcription Schemas
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


class SegmentResponse(BaseModel):
    id: str
    start_time: float
    end_time: float
    status: str
    transcription_text: Optional[str] = None
    error: Optional[str] = None

    class Config:
        from_attributes = True


class ProgressResponse(BaseModel):
    total_segments: int
    completed_segments: int
    percentage: int


class TaskStatusResponse(BaseModel):
    task_id: str
    status: str
    original_filename: str
    progress: ProgressResponse
    segments: List[SegmentResponse] = []
    final_transcript: Optional[str] = None
    language: Optional[str] = None
    error: Optional[str] = None
    webhook_status: Optional[str] = None
    created_at: datetime
    completed_at: Optional[datetime] = None


class SubmissionResponse(BaseModel):
    task_id: str
    status: str
    total_segments: int
    estimated_duration: Optional[float] = None
    job_id: Optional[str] = None
    status_url: str
