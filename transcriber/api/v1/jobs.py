"""
Background job endpoints
"""

from fastapi import APIRouter, status
from redis.exceptions import RedisError

from transcriber.core.deps import QueueDep
from transcriber.core.errors import ExternalServiceError, NotFoundError
from transcriber.schemas.jobs import EnqueuedJobResponse, JobStatusResponse

router = APIRouter()


@router.post("/cleanup", response_model=EnqueuedJobResponse, status_code=status.HTTP_202_ACCEPTED)
async def enqueue_cleanup(queue: QueueDep):
    """Run the cleanup pass on a worker instead of inside the request."""
    try:
        return queue.enqueue_cleanup()
    except RedisError as e:
        raise ExternalServiceError("redis", f"Could not enqueue cleanup: {e}") from e


@router.get("/{job_id}", response_model=JobStatusResponse)
async def get_job_status(job_id: str, queue: QueueDep):
    try:
        job = queue.job_status(job_id)
    except RedisError as e:
        raise ExternalServiceError("redis", f"Could not read job {job_id}: {e}") from e
    if job is None:
        raise NotFoundError("Job", job_id)
    return job
