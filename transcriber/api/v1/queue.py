"""
Queue endpoints

Triggered by a scheduler (cron) to drain pending and stale segments.
"""

from typing import Annotated, Optional

from fastapi import APIRouter, Query

from transcriber.core.deps import QueueProcessorDep
from transcriber.schemas.queue import ProcessQueueResponse, QueueStatsResponse

router = APIRouter()


@router.api_route("/process", methods=["GET", "POST"], response_model=ProcessQueueResponse)
async def process_queue(
    processor: QueueProcessorDep,
    max_concurrent: Annotated[Optional[int], Query(ge=1, le=50)] = None,
):
    return await processor.process_queue(max_concurrent)


@router.get("/stats", response_model=QueueStatsResponse)
async def queue_stats(processor: QueueProcessorDep):
    return await processor.queue_stats()
