"""
Background Job Schemas
"""

from typing import Any, Optional

from pydantic import BaseModel


class EnqueuedJobResponse(BaseModel):
    id: str
    queue: str
    func_name: str

    class Config:
        from_attributes = True


class JobStatusResponse(BaseModel):
    id: str
    status: str
    result: Optional[Any] = None
