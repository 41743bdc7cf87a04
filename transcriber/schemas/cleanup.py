"""
Cleanup Schemas
"""

from typing import List, Optional

from pydantic import BaseModel, Field


class CleanupRequest(BaseModel):
    max_retries: Optional[int] = Field(default=None, ge=0, le=10)
    batch_size: Optional[int] = Field(default=None, ge=1, le=500)


class CleanupErrorResponse(BaseModel):
    task_id: str
    error: str
    retry_count: int

    class Config:
        from_attributes = True


class CleanupReportResponse(BaseModel):
    tasks_processed: int
    files_deleted: int
    errors: List[CleanupErrorResponse] = []

    class Config:
        from_attributes = True


class CleanupTaskResponse(BaseModel):
    task_id: str
    cleaned: bool


class CleanupStatsResponse(BaseModel):
    total_tasks: int
    processing_tasks: int
    completed_tasks: int
    failed_tasks: int
    cleaned_tasks: int
