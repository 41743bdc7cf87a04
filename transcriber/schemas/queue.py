"""
Queue Schemas
"""

from typing import Dict

from pydantic import BaseModel


class ProcessQueueResponse(BaseModel):
    processed_count: int
    remaining_count: int
    outcomes: Dict[str, int] = {}

    class Config:
        from_attributes = True


class QueueStatsResponse(BaseModel):
    pending: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0
    total: int = 0
