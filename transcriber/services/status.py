"""
Task status query
"""

from transcriber.core.errors import NotFoundError
from transcriber.schemas.transcription import (
    ProgressResponse,
    SegmentResponse,
    TaskStatusResponse,
)
from transcriber.store.base import TaskStore


class TaskStatusService:
    def __init__(self, store: TaskStore):
        self.store = store

    async def get_task_status(self, task_id: str) -> TaskStatusResponse:
        task = await self.store.get_task(task_id)
        if task is None:
            raise NotFoundError("Task", task_id)

        segments = await self.store.list_segments(task_id)
        return TaskStatusResponse(
            task_id=task.id,
            status=task.status.value,
            original_filename=task.original_filename,
            progress=ProgressResponse(
                total_segments=task.total_segments,
                completed_segments=task.completed_segments,
                percentage=task.progress_percentage,
            ),
            segments=[
                SegmentResponse(
                    id=s.id,
                    start_time=s.start_time,
                    end_time=s.end_time,
                    status=s.status.value,
                    transcription_text=s.transcription_text,
                    error=s.error_message,
                )
                for s in segments
            ],
            final_transcript=task.final_transcript,
            language=task.language,
            error=task.error_message,
            webhook_status=task.webhook_status,
            created_at=task.created_at,
            completed_at=task.completed_at,
        )
