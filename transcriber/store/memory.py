"""
In-memory store

Process-local arena of records keyed by id. Used by the test suite and for
running the service without a database. Every method completes without an
await in between reads and writes, so each call is atomic on the event loop.
"""

from datetime import datetime
from typing import Iterable, Optional, Sequence

from transcriber.core.errors import NotFoundError
from transcriber.store.base import Clock, TaskStore
from transcriber.store.records import (
    SEGMENT_FIELDS,
    TASK_FIELDS,
    SegmentRecord,
    SegmentStatus,
    TaskRecord,
    TaskStatus,
    apply_changes,
    check_changes,
)


class InMemoryStore(TaskStore):
    def __init__(self, clock: Optional[Clock] = None):
        super().__init__(clock)
        self.tasks: dict[str, TaskRecord] = {}
        self.segments: dict[str, SegmentRecord] = {}

    # Tasks

    async def create_task(self, task: TaskRecord, segments: Sequence[SegmentRecord]) -> TaskRecord:
        now = self.clock()
        task = apply_changes(task, {"created_at": now, "updated_at": now, "total_segments": len(segments)})
        self.tasks[task.id] = task
        for segment in segments:
            self.segments[segment.id] = apply_changes(segment, {"created_at": now, "updated_at": now})
        return task

    async def get_task(self, task_id: str) -> Optional[TaskRecord]:
        return self.tasks.get(task_id)

    async def update_task(self, task_id: str, **changes) -> TaskRecord:
        task = self.tasks.get(task_id)
        if task is None:
            raise NotFoundError("Task", task_id)
        return self._write_task(task, changes)

    async def transition_task(
        self,
        task_id: str,
        expected: Iterable[TaskStatus],
        **changes,
    ) -> Optional[TaskRecord]:
        task = self.tasks.get(task_id)
        if task is None or task.status not in set(expected):
            return None
        return self._write_task(task, changes)

    async def increment_completed_segments(self, task_id: str) -> TaskRecord:
        task = self.tasks.get(task_id)
        if task is None:
            raise NotFoundError("Task", task_id)
        completed = min(task.completed_segments + 1, task.total_segments)
        return self._write_task(task, {"completed_segments": completed})

    async def list_tasks(
        self,
        statuses: Iterable[TaskStatus],
        *,
        completed_before: Optional[datetime] = None,
        created_before: Optional[datetime] = None,
        include_cleaned: bool = False,
        limit: Optional[int] = None,
    ) -> list[TaskRecord]:
        wanted = set(statuses)
        result = []
        for task in sorted(self.tasks.values(), key=lambda t: t.created_at):
            if task.status not in wanted:
                continue
            if not include_cleaned and task.cleaned_at is not None:
                continue
            if completed_before is not None and (task.completed_at is None or task.completed_at >= completed_before):
                continue
            if created_before is not None and task.created_at >= created_before:
                continue
            result.append(task)
        return result[:limit] if limit is not None else result

    async def count_tasks(self, status: Optional[TaskStatus] = None, *, cleaned: Optional[bool] = None) -> int:
        count = 0
        for task in self.tasks.values():
            if status is not None and task.status != status:
                continue
            if cleaned is not None and (task.cleaned_at is not None) != cleaned:
                continue
            count += 1
        return count

    async def delete_task(self, task_id: str) -> bool:
        if self.tasks.pop(task_id, None) is None:
            return False
        for segment_id in [s.id for s in self.segments.values() if s.task_id == task_id]:
            del self.segments[segment_id]
        return True

    # Segments

    async def get_segment(self, segment_id: str) -> Optional[SegmentRecord]:
        return self.segments.get(segment_id)

    async def get_segment_by_correlation_id(self, correlation_id: str) -> Optional[SegmentRecord]:
        for segment in self.segments.values():
            if segment.correlation_id == correlation_id:
                return segment
        return None

    async def list_segments(self, task_id: str) -> list[SegmentRecord]:
        return sorted(
            (s for s in self.segments.values() if s.task_id == task_id),
            key=lambda s: s.start_time,
        )

    async def list_segments_by_status(
        self,
        status: SegmentStatus,
        stale_before: Optional[datetime] = None,
    ) -> list[SegmentRecord]:
        result = [
            s for s in self.segments.values()
            if s.status == status and (stale_before is None or s.updated_at < stale_before)
        ]
        return sorted(result, key=lambda s: (s.start_time, s.created_at))

    async def update_segment(self, segment_id: str, **changes) -> SegmentRecord:
        segment = self.segments.get(segment_id)
        if segment is None:
            raise NotFoundError("Segment", segment_id)
        return self._write_segment(segment, changes)

    async def transition_segment(
        self,
        segment_id: str,
        expected: Iterable[SegmentStatus],
        *,
        stale_before: Optional[datetime] = None,
        **changes,
    ) -> Optional[SegmentRecord]:
        segment = self.segments.get(segment_id)
        if segment is None or segment.status not in set(expected):
            return None
        if stale_before is not None and segment.updated_at >= stale_before:
            return None
        return self._write_segment(segment, changes)

    async def count_segments_by_status(self) -> dict[SegmentStatus, int]:
        counts = {status: 0 for status in SegmentStatus}
        for segment in self.segments.values():
            counts[segment.status] += 1
        return counts

    def _write_task(self, task: TaskRecord, changes: dict) -> TaskRecord:
        check_changes(TASK_FIELDS, changes)
        if "status" in changes:
            changes["status"] = TaskStatus(changes["status"])
        changes.setdefault("updated_at", self.clock())
        task = apply_changes(task, changes)
        self.tasks[task.id] = task
        return task

    def _write_segment(self, segment: SegmentRecord, changes: dict) -> SegmentRecord:
        check_changes(SEGMENT_FIELDS, changes)
        if "status" in changes:
            changes["status"] = SegmentStatus(changes["status"])
        changes.setdefault("updated_at", self.clock())
        segment = apply_changes(segment, changes)
        self.segments[segment.id] = segment
        return segment
