"""
Cleanup endpoints
"""

from typing import Optional

from fastapi import APIRouter

from transcriber.core.deps import CleanupServiceDep
from transcriber.schemas.cleanup import (
    CleanupReportResponse,
    CleanupRequest,
    CleanupStatsResponse,
    CleanupTaskResponse,
)
from transcriber.services.cleanup import CleanupOptions

router = APIRouter()


@router.post("", response_model=CleanupReportResponse)
async def run_cleanup(cleanup: CleanupServiceDep, request: Optional[CleanupRequest] = None):
    request = request or CleanupRequest()
    options = CleanupOptions.from_settings(
        max_retries=request.max_retries,
        batch_size=request.batch_size,
    )
    return await cleanup.perform_cleanup(options)


@router.post("/tasks/{task_id}", response_model=CleanupTaskResponse)
async def cleanup_task(task_id: str, cleanup: CleanupServiceDep):
    return CleanupTaskResponse(task_id=task_id, cleaned=await cleanup.cleanup_task(task_id))


@router.get("/stats", response_model=CleanupStatsResponse)
async def cleanup_stats(cleanup: CleanupServiceDep):
    return await cleanup.cleanup_stats()
