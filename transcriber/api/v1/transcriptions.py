"""
Transcription endpoints
"""

import uuid
from typing import Annotated, Optional

from fastapi import APIRouter, File, Form, UploadFile, status
from redis.exceptions import RedisError

from transcriber.core.config import settings
from transcriber.core.deps import QueueDep, StatusServiceDep, SubmitterDep
from transcriber.core.errors import ValidationError
from transcriber.core.logging import get_logger
from transcriber.schemas.transcription import SubmissionResponse, TaskStatusResponse

logger = get_logger(__name__)

router = APIRouter()


def _check_task_id(task_id: str) -> str:
    try:
        return str(uuid.UUID(task_id))
    except ValueError:
        raise ValidationError("Invalid task id format", details={"task_id": task_id}) from None


@router.post("", response_model=SubmissionResponse, status_code=status.HTTP_202_ACCEPTED)
async def submit_transcription(
    submitter: SubmitterDep,
    queue: QueueDep,
    file: Annotated[UploadFile, File()],
    webhook_url: Annotated[Optional[str], Form()] = None,
):
    """Upload a media file and start transcribing it segment by segment."""
    content = await file.read()
    task = await submitter.submit(file.filename, content, webhook_url)

    job_id = None
    try:
        job_id = queue.enqueue_segment_processing().id
    except RedisError as e:
        # Segments stay pending for the next scheduled queue run
        logger.warning(f"Could not enqueue processing for task {task.id}: {e}")

    return SubmissionResponse(
        task_id=task.id,
        status=task.status.value,
        total_segments=task.total_segments,
        estimated_duration=task.estimated_duration,
        job_id=job_id,
        status_url=f"{settings.api_prefix}/transcriptions/{task.id}",
    )


@router.get("/{task_id}", response_model=TaskStatusResponse)
async def get_transcription_status(task_id: str, status_service: StatusServiceDep):
    return await status_service.get_task_status(_check_task_id(task_id))
