"""
SQLAlchemy store

Task/segment store backed by the relational database. Each call runs in its
own session; compare-and-set transitions are single UPDATE statements guarded
by the expected status, so concurrent workers cannot both win.
"""

from datetime import datetime
from typing import Iterable, Optional, Sequence

from sqlalchemy import delete, func, select, text, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from transcriber.core.errors import NotFoundError, StoreError
from transcriber.core.logging import get_logger
from transcriber.core.time import ensure_utc
from transcriber.models.segment import TranscriptionSegment
from transcriber.models.task import TranscriptionTask
from transcriber.store.base import Clock, TaskStore
from transcriber.store.records import (
    SEGMENT_FIELDS,
    TASK_FIELDS,
    SegmentRecord,
    SegmentStatus,
    TaskRecord,
    TaskStatus,
    check_changes,
)

logger = get_logger(__name__)

_TASK_DATETIMES = ("created_at", "updated_at", "completed_at", "cleaned_at")
_SEGMENT_DATETIMES = ("created_at", "updated_at", "completed_at")


def _task_record(row: TranscriptionTask) -> TaskRecord:
    values = {name: getattr(row, name) for name in TASK_FIELDS}
    values["status"] = TaskStatus(values["status"])
    for name in _TASK_DATETIMES:
        values[name] = ensure_utc(values[name])
    return TaskRecord(**values)


def _segment_record(row: TranscriptionSegment) -> SegmentRecord:
    values = {name: getattr(row, name) for name in SEGMENT_FIELDS}
    values["status"] = SegmentStatus(values["status"])
    for name in _SEGMENT_DATETIMES:
        values[name] = ensure_utc(values[name])
    return SegmentRecord(**values)


def _column_values(changes: dict) -> dict:
    values = dict(changes)
    if "status" in values:
        values["status"] = getattr(values["status"], "value", values["status"])
    return values


class SqlAlchemyStore(TaskStore):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], clock: Optional[Clock] = None):
        super().__init__(clock)
        self.session_factory = session_factory

    # Tasks

    async def create_task(self, task: TaskRecord, segments: Sequence[SegmentRecord]) -> TaskRecord:
        now = self.clock()
        try:
            async with self.session_factory() as session:
                row = TranscriptionTask(
                    id=task.id,
                    status=task.status.value,
                    original_filename=task.original_filename,
                    client_webhook_url=task.client_webhook_url,
                    source_path=task.source_path,
                    estimated_duration=task.estimated_duration,
                    total_segments=len(segments),
                    completed_segments=0,
                    created_at=now,
                    updated_at=now,
                )
                session.add(row)
                await session.flush()
                for segment in segments:
                    session.add(TranscriptionSegment(
                        id=segment.id,
                        task_id=row.id,
                        start_time=segment.start_time,
                        end_time=segment.end_time,
                        status=segment.status.value,
                        file_path=segment.file_path,
                        attempts=0,
                        created_at=now,
                        updated_at=now,
                    ))
                await session.commit()
                await session.refresh(row)
                return _task_record(row)
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to create task: {e}") from e

    async def get_task(self, task_id: str) -> Optional[TaskRecord]:
        try:
            async with self.session_factory() as session:
                row = await session.get(TranscriptionTask, task_id)
                return _task_record(row) if row else None
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to get task: {e}") from e

    async def update_task(self, task_id: str, **changes) -> TaskRecord:
        record = await self._update_task(task_id, None, changes)
        if record is None:
            raise NotFoundError("Task", task_id)
        return record

    async def transition_task(
        self,
        task_id: str,
        expected: Iterable[TaskStatus],
        **changes,
    ) -> Optional[TaskRecord]:
        return await self._update_task(task_id, expected, changes)

    async def increment_completed_segments(self, task_id: str) -> TaskRecord:
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    update(TranscriptionTask)
                    .where(TranscriptionTask.id == task_id)
                    .where(TranscriptionTask.completed_segments < TranscriptionTask.total_segments)
                    .values(
                        completed_segments=TranscriptionTask.completed_segments + 1,
                        updated_at=self.clock(),
                    )
                )
                await session.commit()
                row = await session.get(TranscriptionTask, task_id, populate_existing=True)
                if row is None:
                    raise NotFoundError("Task", task_id)
                if result.rowcount == 0:
                    logger.warning(f"Task {task_id} already counts all of its segments as completed")
                return _task_record(row)
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to increment completed segments: {e}") from e

    async def list_tasks(
        self,
        statuses: Iterable[TaskStatus],
        *,
        completed_before: Optional[datetime] = None,
        created_before: Optional[datetime] = None,
        include_cleaned: bool = False,
        limit: Optional[int] = None,
    ) -> list[TaskRecord]:
        stmt = (
            select(TranscriptionTask)
            .where(TranscriptionTask.status.in_([TaskStatus(s).value for s in statuses]))
            .order_by(TranscriptionTask.created_at)
        )
        if not include_cleaned:
            stmt = stmt.where(TranscriptionTask.cleaned_at.is_(None))
        if completed_before is not None:
            stmt = stmt.where(TranscriptionTask.completed_at < completed_before)
        if created_before is not None:
            stmt = stmt.where(TranscriptionTask.created_at < created_before)
        if limit is not None:
            stmt = stmt.limit(limit)
        try:
            async with self.session_factory() as session:
                result = await session.execute(stmt)
                return [_task_record(row) for row in result.scalars().all()]
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to list tasks: {e}") from e

    async def count_tasks(self, status: Optional[TaskStatus] = None, *, cleaned: Optional[bool] = None) -> int:
        stmt = select(func.count()).select_from(TranscriptionTask)
        if status is not None:
            stmt = stmt.where(TranscriptionTask.status == TaskStatus(status).value)
        if cleaned is True:
            stmt = stmt.where(TranscriptionTask.cleaned_at.is_not(None))
        elif cleaned is False:
            stmt = stmt.where(TranscriptionTask.cleaned_at.is_(None))
        try:
            async with self.session_factory() as session:
                return (await session.execute(stmt)).scalar_one()
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to count tasks: {e}") from e

    async def delete_task(self, task_id: str) -> bool:
        try:
            async with self.session_factory() as session:
                # Segments first: not every backend enforces ON DELETE CASCADE
                await session.execute(
                    delete(TranscriptionSegment).where(TranscriptionSegment.task_id == task_id)
                )
                result = await session.execute(
                    delete(TranscriptionTask).where(TranscriptionTask.id == task_id)
                )
                await session.commit()
                return result.rowcount > 0
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to delete task: {e}") from e

    # Segments

    async def get_segment(self, segment_id: str) -> Optional[SegmentRecord]:
        try:
            async with self.session_factory() as session:
                row = await session.get(TranscriptionSegment, segment_id)
                return _segment_record(row) if row else None
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to get segment: {e}") from e

    async def get_segment_by_correlation_id(self, correlation_id: str) -> Optional[SegmentRecord]:
        stmt = select(TranscriptionSegment).where(TranscriptionSegment.correlation_id == correlation_id)
        try:
            async with self.session_factory() as session:
                row = (await session.execute(stmt)).scalar_one_or_none()
                return _segment_record(row) if row else None
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to get segment by correlation id: {e}") from e

    async def list_segments(self, task_id: str) -> list[SegmentRecord]:
        stmt = (
            select(TranscriptionSegment)
            .where(TranscriptionSegment.task_id == task_id)
            .order_by(TranscriptionSegment.start_time)
        )
        try:
            async with self.session_factory() as session:
                result = await session.execute(stmt)
                return [_segment_record(row) for row in result.scalars().all()]
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to list segments: {e}") from e

    async def list_segments_by_status(
        self,
        status: SegmentStatus,
        stale_before: Optional[datetime] = None,
    ) -> list[SegmentRecord]:
        stmt = (
            select(TranscriptionSegment)
            .where(TranscriptionSegment.status == SegmentStatus(status).value)
            .order_by(TranscriptionSegment.start_time, TranscriptionSegment.created_at)
        )
        if stale_before is not None:
            stmt = stmt.where(TranscriptionSegment.updated_at < stale_before)
        try:
            async with self.session_factory() as session:
                result = await session.execute(stmt)
                return [_segment_record(row) for row in result.scalars().all()]
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to list segments by status: {e}") from e

    async def update_segment(self, segment_id: str, **changes) -> SegmentRecord:
        record = await self._update_segment(segment_id, None, changes, None)
        if record is None:
            raise NotFoundError("Segment", segment_id)
        return record

    async def transition_segment(
        self,
        segment_id: str,
        expected: Iterable[SegmentStatus],
        *,
        stale_before: Optional[datetime] = None,
        **changes,
    ) -> Optional[SegmentRecord]:
        return await self._update_segment(segment_id, expected, changes, stale_before)

    async def count_segments_by_status(self) -> dict[SegmentStatus, int]:
        stmt = select(TranscriptionSegment.status, func.count()).group_by(TranscriptionSegment.status)
        counts = {status: 0 for status in SegmentStatus}
        try:
            async with self.session_factory() as session:
                for status, count in (await session.execute(stmt)).all():
                    counts[SegmentStatus(status)] = count
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to count segments: {e}") from e
        return counts

    async def ping(self) -> bool:
        try:
            async with self.session_factory() as session:
                await session.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            raise StoreError(f"Database unreachable: {e}") from e
        return True

    async def _update_task(
        self,
        task_id: str,
        expected: Optional[Iterable[TaskStatus]],
        changes: dict,
    ) -> Optional[TaskRecord]:
        check_changes(TASK_FIELDS, changes)
        values = _column_values(changes)
        values.setdefault("updated_at", self.clock())
        stmt = update(TranscriptionTask).where(TranscriptionTask.id == task_id).values(**values)
        if expected is not None:
            stmt = stmt.where(TranscriptionTask.status.in_([TaskStatus(s).value for s in expected]))
        try:
            async with self.session_factory() as session:
                result = await session.execute(stmt)
                await session.commit()
                if result.rowcount == 0:
                    return None
                row = await session.get(TranscriptionTask, task_id, populate_existing=True)
                return _task_record(row)
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to update task: {e}") from e

    async def _update_segment(
        self,
        segment_id: str,
        expected: Optional[Iterable[SegmentStatus]],
        changes: dict,
        stale_before: Optional[datetime],
    ) -> Optional[SegmentRecord]:
        check_changes(SEGMENT_FIELDS, changes)
        values = _column_values(changes)
        values.setdefault("updated_at", self.clock())
        stmt = update(TranscriptionSegment).where(TranscriptionSegment.id == segment_id).values(**values)
        if expected is not None:
            stmt = stmt.where(TranscriptionSegment.status.in_([SegmentStatus(s).value for s in expected]))
        if stale_before is not None:
            stmt = stmt.where(TranscriptionSegment.updated_at < stale_before)
        try:
            async with self.session_factory() as session:
                result = await session.execute(stmt)
                await session.commit()
                if result.rowcount == 0:
                    return None
                row = await session.get(TranscriptionSegment, segment_id, populate_existing=True)
                return _segment_record(row)
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to update segment: {e}") from e
