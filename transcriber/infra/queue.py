"""
Job queue infrastructure

Thin wrapper around RQ so background work started by the API (segment
dispatch after an upload, scheduled cleanup) is a tracked job with an id,
a status and a stored failure, rather than a detached coroutine.
"""

from dataclasses import dataclass
from typing import Any, Optional

from redis import Redis
from rq import Queue
from rq.exceptions import NoSuchJobError
from rq.job import Job

from transcriber.core.config import settings
from transcriber.core.logging import get_logger

logger = get_logger(__name__)

PROCESS_QUEUE_JOB = "transcriber.workers.jobs.process_segments.process_segments"
CLEANUP_JOB = "transcriber.workers.jobs.cleanup_tasks.cleanup_tasks"


@dataclass
class EnqueuedJob:
    id: str
    queue: str
    func_name: str


class JobQueue:
    def __init__(self, queue: Queue):
        self.queue = queue

    @property
    def name(self) -> str:
        return self.queue.name

    def enqueue(self, func_name: str, *args: Any, **kwargs: Any) -> EnqueuedJob:
        job = self.queue.enqueue(
            func_name,
            *args,
            job_timeout=settings.job_timeout_seconds,
            **kwargs,
        )
        logger.info(f"Enqueued job {job.id} ({func_name}) on queue {self.name}")
        return EnqueuedJob(id=job.id, queue=self.name, func_name=func_name)

    def enqueue_segment_processing(self) -> EnqueuedJob:
        return self.enqueue(PROCESS_QUEUE_JOB)

    def enqueue_cleanup(self) -> EnqueuedJob:
        return self.enqueue(CLEANUP_JOB)

    def job_status(self, job_id: str) -> Optional[dict[str, Any]]:
        try:
            job = Job.fetch(job_id, connection=self.queue.connection)
        except NoSuchJobError:
            return None
        status = job.get_status()
        return {
            "id": job.id,
            "status": getattr(status, "value", status),
            "result": job.return_value(),
        }


class QueueFactory:
    @classmethod
    def get_queue(cls, connection: Redis, name: str = "transcription") -> JobQueue:
        return JobQueue(Queue(name, connection=connection))
