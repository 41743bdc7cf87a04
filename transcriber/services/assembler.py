"""
Transcript Assembler

Finalizes a task once none of its segments is still in flight. Safe to call
any number of times and from concurrent callers: the task status change is a
compare-and-set, so only one caller finalizes and notifies.
"""

from dataclasses import dataclass, field
from typing import Iterable, Optional

from transcriber.core.config import settings
from transcriber.core.logging import get_logger
from transcriber.services.client_webhook import (
    WEBHOOK_SKIPPED,
    ClientWebhookNotifier,
    build_payload,
)
from transcriber.store.base import TaskStore
from transcriber.store.records import (
    ACTIVE_SEGMENT_STATUSES,
    SegmentRecord,
    SegmentStatus,
    TaskRecord,
    TaskStatus,
)

logger = get_logger(__name__)

# Gaps up to this size come from rounding in the splitter
MAX_SILENT_GAP_SECONDS = 1.0


@dataclass
class AssembledTranscript:
    text: str
    language: Optional[str] = None
    segment_texts: list[tuple[float, float, str]] = field(default_factory=list)


def assemble(segments: Iterable[SegmentRecord]) -> AssembledTranscript:
    """Join segment texts in time order, skipping empty ones"""
    ordered = sorted(segments, key=lambda s: s.start_time)
    check_continuity(ordered)

    entries = []
    languages: dict[str, int] = {}
    for segment in ordered:
        text = (segment.transcription_text or "").strip()
        if not text:
            continue
        entries.append((segment.start_time, segment.end_time, text))
        if segment.language:
            languages[segment.language] = languages.get(segment.language, 0) + 1

    language = max(languages, key=languages.get) if languages else None
    return AssembledTranscript(
        text=" ".join(text for _, _, text in entries),
        language=language,
        segment_texts=entries,
    )


def check_continuity(ordered: list[SegmentRecord]) -> None:
    for previous, current in zip(ordered, ordered[1:]):
        gap = current.start_time - previous.end_time
        if gap > MAX_SILENT_GAP_SECONDS:
            logger.warning(
                f"Gap of {gap:.2f}s between segments {previous.id} and {current.id} "
                f"of task {current.task_id}"
            )
        elif gap < 0:
            logger.warning(
                f"Segments {previous.id} and {current.id} of task {current.task_id} "
                f"overlap by {-gap:.2f}s"
            )


def failure_message(failed: int, total: int) -> str:
    return f"{failed} of {total} segment(s) failed to process"


class TranscriptAssembler:
    def __init__(
        self,
        store: TaskStore,
        notifier: Optional[ClientWebhookNotifier] = None,
        notify_on_failure: Optional[bool] = None,
    ):
        self.store = store
        self.notifier = notifier or ClientWebhookNotifier()
        self.notify_on_failure = (
            settings.notify_on_failure if notify_on_failure is None else notify_on_failure
        )

    async def try_finalize(self, task_id: str) -> Optional[TaskRecord]:
        """
        Move the task to its terminal state if every segment is terminal.
        Returns the finalized task, or None when nothing changed.
        """
        task = await self.store.get_task(task_id)
        if task is None:
            logger.warning(f"Cannot finalize unknown task {task_id}")
            return None
        if task.is_terminal:
            return None

        segments = await self.store.list_segments(task_id)
        if any(s.status in ACTIVE_SEGMENT_STATUSES for s in segments):
            return None

        failed = sum(1 for s in segments if s.status == SegmentStatus.FAILED)
        if failed:
            return await self._fail(task, failed, len(segments))
        return await self._complete(task, segments)

    async def _complete(self, task: TaskRecord, segments: list[SegmentRecord]) -> Optional[TaskRecord]:
        assembled = assemble(segments)
        finalized = await self.store.transition_task(
            task.id,
            [TaskStatus.PROCESSING],
            status=TaskStatus.COMPLETED,
            final_transcript=assembled.text,
            language=assembled.language,
            completed_segments=task.total_segments,
            error_message=None,
            completed_at=self.store.clock(),
        )
        if finalized is None:
            # Another caller finalized first
            return None

        logger.info(
            f"Task {task.id} completed: {len(segments)} segment(s), "
            f"{len(assembled.text)} characters"
        )
        return await self._notify(finalized)

    async def _fail(self, task: TaskRecord, failed: int, total: int) -> Optional[TaskRecord]:
        finalized = await self.store.transition_task(
            task.id,
            [TaskStatus.PROCESSING],
            status=TaskStatus.FAILED,
            final_transcript=None,
            error_message=failure_message(failed, total),
            completed_at=self.store.clock(),
        )
        if finalized is None:
            return None

        logger.warning(f"Task {task.id} failed: {finalized.error_message}")
        if not self.notify_on_failure:
            return finalized
        return await self._notify(finalized)

    async def _notify(self, task: TaskRecord) -> TaskRecord:
        if not task.client_webhook_url:
            return await self.store.update_task(task.id, webhook_status=WEBHOOK_SKIPPED)

        result = await self.notifier.deliver(task.client_webhook_url, build_payload(task))
        return await self.store.update_task(task.id, webhook_status=result.webhook_status)
