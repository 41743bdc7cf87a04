"""
Cleanup Service

Releases the artifacts of finished tasks once the retention window has
passed. Tasks abandoned mid-processing have their in-flight segments failed
and are then finalized like any other task, so their artifacts can be
released as well. A task is marked cleaned only after every one of its
files is gone, so a partial failure is picked up again on the next run.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Awaitable, Callable, Optional

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from transcriber.core.config import settings
from transcriber.core.logging import get_logger
from transcriber.infra.storage import ArtifactStorage
from transcriber.services.assembler import TranscriptAssembler
from transcriber.store.base import TaskStore
from transcriber.store.records import (
    ACTIVE_SEGMENT_STATUSES,
    TERMINAL_TASK_STATUSES,
    SegmentStatus,
    TaskRecord,
    TaskStatus,
)

logger = get_logger(__name__)

ABANDONED_MESSAGE = "Task abandoned"


@dataclass
class CleanupOptions:
    max_retries: int = 3
    retry_delay: float = 1.0
    batch_size: int = 50
    delete_records: bool = False

    @classmethod
    def from_settings(cls, **overrides: Any) -> "CleanupOptions":
        values = {
            "max_retries": settings.cleanup_max_retries,
            "retry_delay": settings.cleanup_retry_delay_seconds,
            "batch_size": settings.cleanup_batch_size,
            "delete_records": settings.cleanup_delete_records,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


@dataclass
class CleanupError:
    task_id: str
    error: str
    retry_count: int


@dataclass
class CleanupReport:
    tasks_processed: int = 0
    files_deleted: int = 0
    errors: list[CleanupError] = field(default_factory=list)


class ArtifactReleaseError(Exception):
    def __init__(self, ref: str, error: Exception, retry_count: int):
        super().__init__(f"Failed to delete {ref}: {error}")
        self.ref = ref
        self.retry_count = retry_count


class CleanupService:
    def __init__(
        self,
        store: TaskStore,
        storage: Optional[ArtifactStorage] = None,
        assembler: Optional[TranscriptAssembler] = None,
        *,
        retention_hours: Optional[float] = None,
        abandoned_hours: Optional[float] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.store = store
        self.storage = storage or ArtifactStorage()
        self.assembler = assembler or TranscriptAssembler(store)
        self.retention = timedelta(
            hours=settings.cleanup_retention_hours if retention_hours is None else retention_hours
        )
        self.abandoned_after = timedelta(
            hours=settings.abandoned_task_hours if abandoned_hours is None else abandoned_hours
        )
        self._sleep = sleep

    async def perform_cleanup(self, options: Optional[CleanupOptions] = None) -> CleanupReport:
        options = options or CleanupOptions.from_settings()
        now = self.store.clock()

        expired = await self.store.list_tasks(
            TERMINAL_TASK_STATUSES,
            completed_before=now - self.retention,
        )
        abandoned = await self.store.list_tasks(
            [TaskStatus.PROCESSING],
            created_before=now - self.abandoned_after,
        )
        candidates = expired + abandoned
        logger.info(
            f"Cleanup starting: {len(expired)} expired and {len(abandoned)} abandoned task(s)"
        )

        report = CleanupReport()
        batch_size = max(options.batch_size, 1)
        for start in range(0, len(candidates), batch_size):
            batch = candidates[start:start + batch_size]
            results = await asyncio.gather(
                *(self._cleanup(task, options) for task in batch),
                return_exceptions=True,
            )
            for task, result in zip(batch, results):
                self._record(report, task.id, result)

        logger.info(
            f"Cleanup finished: processed={report.tasks_processed} "
            f"files_deleted={report.files_deleted} errors={len(report.errors)}"
        )
        return report

    async def cleanup_task(self, task_id: str, options: Optional[CleanupOptions] = None) -> bool:
        """
        Release one task's artifacts now, ignoring the retention window.
        Returns False for unknown tasks, tasks still in progress, and failures.
        """
        options = options or CleanupOptions.from_settings()
        task = await self.store.get_task(task_id)
        if task is None:
            logger.info(f"Cleanup skipped, task {task_id} not found")
            return False
        if task.cleaned_at is not None:
            return True
        if task.status == TaskStatus.PROCESSING and not self._is_abandoned(task):
            logger.info(f"Cleanup skipped, task {task_id} is still processing")
            return False

        try:
            await self._cleanup(task, options)
        except ArtifactReleaseError as e:
            logger.error(f"Cleanup of task {task_id} failed: {e}")
            return False
        return True

    async def cleanup_stats(self) -> dict[str, int]:
        return {
            "total_tasks": await self.store.count_tasks(),
            "processing_tasks": await self.store.count_tasks(TaskStatus.PROCESSING),
            "completed_tasks": await self.store.count_tasks(TaskStatus.COMPLETED),
            "failed_tasks": await self.store.count_tasks(TaskStatus.FAILED),
            "cleaned_tasks": await self.store.count_tasks(cleaned=True),
        }

    def _is_abandoned(self, task: TaskRecord) -> bool:
        return task.created_at < self.store.clock() - self.abandoned_after

    def _record(self, report: CleanupReport, task_id: str, result: Any) -> None:
        if isinstance(result, ArtifactReleaseError):
            report.errors.append(CleanupError(task_id, str(result), result.retry_count))
        elif isinstance(result, BaseException):
            logger.error(f"Cleanup of task {task_id} raised: {result!r}")
            report.errors.append(CleanupError(task_id, str(result) or type(result).__name__, 0))
        else:
            report.tasks_processed += 1
            report.files_deleted += result

    async def _cleanup(self, task: TaskRecord, options: CleanupOptions) -> int:
        if task.status == TaskStatus.PROCESSING:
            await self._abandon(task)

        segments = await self.store.list_segments(task.id)
        refs = [task.source_path] + [s.file_path for s in segments]
        deleted = 0
        for ref in refs:
            if ref and await self._delete_with_retry(ref, options):
                deleted += 1
        await self.storage.remove_task_dir(task.id)

        if options.delete_records:
            await self.store.delete_task(task.id)
            logger.info(f"Task {task.id} cleaned and deleted ({deleted} file(s))")
        else:
            await self.store.update_task(task.id, cleaned_at=self.store.clock())
            logger.info(f"Task {task.id} cleaned ({deleted} file(s))")
        return deleted

    async def _abandon(self, task: TaskRecord) -> None:
        now = self.store.clock()
        for segment in await self.store.list_segments(task.id):
            if segment.status in ACTIVE_SEGMENT_STATUSES:
                await self.store.transition_segment(
                    segment.id,
                    ACTIVE_SEGMENT_STATUSES,
                    status=SegmentStatus.FAILED,
                    error_message=ABANDONED_MESSAGE,
                    completed_at=now,
                )
        finalized = await self.assembler.try_finalize(task.id)
        if finalized is not None:
            logger.warning(
                f"Task {task.id} abandoned after {self.abandoned_after}, "
                f"finalized as {finalized.status.value}"
            )

    async def _delete_with_retry(self, ref: str, options: CleanupOptions) -> bool:
        """True when the file was deleted, False when it was already gone"""
        attempt_number = 0
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(options.max_retries + 1),
                wait=wait_exponential(multiplier=options.retry_delay),
                retry=retry_if_exception_type(OSError),
                sleep=self._sleep,
                before_sleep=self._log_retry(ref),
                reraise=True,
            ):
                with attempt:
                    attempt_number = attempt.retry_state.attempt_number
                    return await self.storage.delete(ref)
        except OSError as e:
            raise ArtifactReleaseError(ref, e, attempt_number - 1) from e

    @staticmethod
    def _log_retry(ref: str) -> Callable[[RetryCallState], None]:
        def log(retry_state: RetryCallState) -> None:
            logger.warning(
                f"Deleting {ref} failed (attempt {retry_state.attempt_number}, "
                f"retrying in {retry_state.next_action.sleep:.1f}s): "
                f"{retry_state.outcome.exception()}"
            )

        return log
