"""
Task/segment store interface

The orchestration engine only talks to this interface. Status changes that
must happen exactly once go through the compare-and-set methods
(transition_task, transition_segment); plain updates are last-writer-wins.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, Iterable, Optional, Sequence

from transcriber.core.time import utcnow
from transcriber.store.records import (
    SegmentRecord,
    SegmentStatus,
    TaskRecord,
    TaskStatus,
)

Clock = Callable[[], datetime]


class TaskStore(ABC):
    def __init__(self, clock: Optional[Clock] = None):
        self.clock: Clock = clock or utcnow

    # Tasks

    @abstractmethod
    async def create_task(self, task: TaskRecord, segments: Sequence[SegmentRecord]) -> TaskRecord:
        """Persist a task together with all of its segments"""

    @abstractmethod
    async def get_task(self, task_id: str) -> Optional[TaskRecord]:
        ...

    @abstractmethod
    async def update_task(self, task_id: str, **changes) -> TaskRecord:
        """Apply changes; raises NotFoundError for an unknown task"""

    @abstractmethod
    async def transition_task(
        self,
        task_id: str,
        expected: Iterable[TaskStatus],
        **changes,
    ) -> Optional[TaskRecord]:
        """Apply changes only if the task status is one of expected; None otherwise"""

    @abstractmethod
    async def increment_completed_segments(self, task_id: str) -> TaskRecord:
        """Atomically add one to completed_segments, never past total_segments"""

    @abstractmethod
    async def list_tasks(
        self,
        statuses: Iterable[TaskStatus],
        *,
        completed_before: Optional[datetime] = None,
        created_before: Optional[datetime] = None,
        include_cleaned: bool = False,
        limit: Optional[int] = None,
    ) -> list[TaskRecord]:
        ...

    @abstractmethod
    async def count_tasks(self, status: Optional[TaskStatus] = None, *, cleaned: Optional[bool] = None) -> int:
        ...

    @abstractmethod
    async def delete_task(self, task_id: str) -> bool:
        """Delete a task and every segment it owns"""

    # Segments

    @abstractmethod
    async def get_segment(self, segment_id: str) -> Optional[SegmentRecord]:
        ...

    @abstractmethod
    async def get_segment_by_correlation_id(self, correlation_id: str) -> Optional[SegmentRecord]:
        ...

    @abstractmethod
    async def list_segments(self, task_id: str) -> list[SegmentRecord]:
        """Segments of one task ordered by start time"""

    @abstractmethod
    async def list_segments_by_status(
        self,
        status: SegmentStatus,
        stale_before: Optional[datetime] = None,
    ) -> list[SegmentRecord]:
        """
        Segments in a status, ordered by start time.
        With stale_before, only segments last updated before that instant.
        """

    @abstractmethod
    async def update_segment(self, segment_id: str, **changes) -> SegmentRecord:
        ...

    @abstractmethod
    async def transition_segment(
        self,
        segment_id: str,
        expected: Iterable[SegmentStatus],
        *,
        stale_before: Optional[datetime] = None,
        **changes,
    ) -> Optional[SegmentRecord]:
        """
        Apply changes only if the segment status is one of expected; None otherwise.
        With stale_before, the segment must also have been last updated before it.
        """

    @abstractmethod
    async def count_segments_by_status(self) -> dict[SegmentStatus, int]:
        ...

    async def ping(self) -> bool:
        return True
