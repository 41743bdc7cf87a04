"""
Segment Queue Processor

Dispatches pending segments, and processing segments that went stale, to the
speech-to-text provider in bounded concurrent batches.

Every segment is claimed with a compare-and-set before the provider is
called, so two processors running at once never dispatch the same segment.
A failure on one segment never aborts the batch; only store faults escape.
"""

import asyncio
from collections import Counter
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from transcriber.core.config import settings
from transcriber.core.errors import (
    AppError,
    CircuitOpenError,
    ServiceTimeoutError,
    StoreError,
    ValidationError,
)
from transcriber.core.logging import get_logger
from transcriber.services.assembler import TranscriptAssembler
from transcriber.services.circuit_breaker import CircuitBreaker
from transcriber.services.providers.base import (
    TranscriptionOptions,
    TranscriptionProvider,
    TranscriptionResult,
)
from transcriber.store.base import TaskStore
from transcriber.store.records import SegmentRecord, SegmentStatus

logger = get_logger(__name__)


class DispatchOutcome(str, Enum):
    COMPLETED = "completed"
    AWAITING_CALLBACK = "awaiting_callback"
    RETRY = "retry"
    FAILED = "failed"
    # Not dispatched: the breaker is open
    REJECTED = "rejected"
    # Not dispatched: another processor claimed the segment first
    SKIPPED = "skipped"


DISPATCHED_OUTCOMES = (
    DispatchOutcome.COMPLETED,
    DispatchOutcome.AWAITING_CALLBACK,
    DispatchOutcome.RETRY,
    DispatchOutcome.FAILED,
)


@dataclass
class ProcessQueueResult:
    processed_count: int
    remaining_count: int
    outcomes: dict[str, int] = field(default_factory=dict)


class SegmentQueueProcessor:
    def __init__(
        self,
        store: TaskStore,
        provider: TranscriptionProvider,
        breaker: CircuitBreaker,
        assembler: TranscriptAssembler,
        *,
        max_concurrent: Optional[int] = None,
        stale_after: Optional[float] = None,
        dispatch_delay: Optional[float] = None,
        max_attempts: Optional[int] = None,
        call_timeout: Optional[float] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.store = store
        self.provider = provider
        self.breaker = breaker
        self.assembler = assembler
        self.max_concurrent = max_concurrent or settings.queue_max_concurrent
        self.stale_after = settings.stale_segment_seconds if stale_after is None else stale_after
        self.dispatch_delay = settings.dispatch_delay_seconds if dispatch_delay is None else dispatch_delay
        self.max_attempts = max_attempts or settings.max_segment_attempts
        self.call_timeout = call_timeout or settings.provider_timeout_seconds
        self._sleep = sleep

    async def process_queue(self, max_concurrent: Optional[int] = None) -> ProcessQueueResult:
        batch_size = self.max_concurrent if max_concurrent is None else max_concurrent
        if batch_size < 1:
            raise ValidationError("max_concurrent must be at least 1")

        candidates = await self.select_candidates()
        if candidates:
            logger.info(f"Processing {len(candidates)} segment(s) in batches of {batch_size}")

        outcomes: Counter = Counter()
        for start in range(0, len(candidates), batch_size):
            batch = candidates[start:start + batch_size]
            outcomes.update(await self._run_batch(batch))

        counts = await self.store.count_segments_by_status()
        processed = sum(outcomes[o] for o in DISPATCHED_OUTCOMES)
        result = ProcessQueueResult(
            processed_count=processed,
            remaining_count=counts[SegmentStatus.PENDING],
            outcomes={o.value: outcomes[o] for o in DispatchOutcome if outcomes[o]},
        )
        if candidates:
            logger.info(
                f"Queue run finished: processed={result.processed_count} "
                f"remaining={result.remaining_count} outcomes={result.outcomes}"
            )
        return result

    async def select_candidates(self) -> list[SegmentRecord]:
        """Pending segments plus stale processing ones, earliest start first"""
        pending = await self.store.list_segments_by_status(SegmentStatus.PENDING)
        stale = await self.store.list_segments_by_status(
            SegmentStatus.PROCESSING,
            stale_before=self._stale_cutoff(),
        )
        for segment in stale:
            logger.warning(
                f"Reclaiming stale segment {segment.id} of task {segment.task_id} "
                f"(last update {segment.updated_at.isoformat()})"
            )
        return sorted(pending + stale, key=lambda s: (s.start_time, s.created_at))

    async def queue_stats(self) -> dict[str, int]:
        counts = await self.store.count_segments_by_status()
        stats = {status.value: count for status, count in counts.items()}
        stats["total"] = sum(counts.values())
        return stats

    def _stale_cutoff(self):
        return self.store.clock() - timedelta(seconds=self.stale_after)

    async def _run_batch(self, batch: list[SegmentRecord]) -> list[DispatchOutcome]:
        seen_per_task: Counter = Counter()
        calls = []
        for segment in batch:
            delay = self.dispatch_delay * seen_per_task[segment.task_id]
            seen_per_task[segment.task_id] += 1
            calls.append(self._dispatch(segment, delay))

        results = await asyncio.gather(*calls, return_exceptions=True)

        outcomes = []
        store_error: Optional[BaseException] = None
        for segment, result in zip(batch, results):
            if isinstance(result, DispatchOutcome):
                outcomes.append(result)
            elif isinstance(result, StoreError):
                logger.error(f"Store failure while dispatching segment {segment.id}: {result}")
                store_error = store_error or result
            elif isinstance(result, BaseException):
                logger.error(
                    f"Unexpected error dispatching segment {segment.id}: {result!r}",
                    exc_info=result,
                )
        if store_error is not None:
            raise store_error
        return outcomes

    async def _dispatch(self, segment: SegmentRecord, delay: float) -> DispatchOutcome:
        if delay > 0:
            await self._sleep(delay)

        claimed = await self._claim(segment)
        if claimed is None:
            logger.debug(f"Segment {segment.id} was claimed elsewhere, skipping")
            return DispatchOutcome.SKIPPED

        if not claimed.file_path:
            return await self._fail(claimed, "Segment has no audio file")

        options = TranscriptionOptions(
            language=settings.provider_language,
            diarize=settings.provider_diarize,
            tag_audio_events=settings.provider_tag_audio_events,
            metadata={"task_id": claimed.task_id, "segment_id": claimed.id},
        )

        try:
            result = await self.breaker.call(self._call_provider, claimed.file_path, options)
        except CircuitOpenError as e:
            await self.store.transition_segment(
                claimed.id,
                [SegmentStatus.PROCESSING],
                status=SegmentStatus.PENDING,
                attempts=max(claimed.attempts - 1, 0),
            )
            logger.info(f"Segment {claimed.id} returned to the queue: {e.message}")
            return DispatchOutcome.REJECTED
        except ValidationError as e:
            return await self._fail(claimed, e.message)
        except AppError as e:
            return await self._retry_or_fail(claimed, e.message)
        except Exception as e:
            logger.exception(f"Provider call for segment {claimed.id} raised unexpectedly")
            return await self._retry_or_fail(claimed, str(e) or type(e).__name__)

        return await self._apply_result(claimed, result)

    async def _claim(self, segment: SegmentRecord) -> Optional[SegmentRecord]:
        changes = {
            "status": SegmentStatus.PROCESSING,
            "attempts": segment.attempts + 1,
            "error_message": None,
        }
        if segment.status == SegmentStatus.PROCESSING:
            return await self.store.transition_segment(
                segment.id,
                [SegmentStatus.PROCESSING],
                stale_before=self._stale_cutoff(),
                **changes,
            )
        return await self.store.transition_segment(segment.id, [SegmentStatus.PENDING], **changes)

    async def _call_provider(self, audio_ref: str, options: TranscriptionOptions) -> TranscriptionResult:
        try:
            return await asyncio.wait_for(
                self.provider.transcribe(audio_ref, options),
                timeout=self.call_timeout,
            )
        except asyncio.TimeoutError:
            raise ServiceTimeoutError(
                self.provider.name,
                f"No response within {self.call_timeout:.0f}s",
            ) from None

    async def _apply_result(self, segment: SegmentRecord, result: TranscriptionResult) -> DispatchOutcome:
        if result.text is not None:
            completed = await self.store.transition_segment(
                segment.id,
                [SegmentStatus.PROCESSING],
                status=SegmentStatus.COMPLETED,
                transcription_text=result.text,
                language=result.language,
                completed_at=self.store.clock(),
            )
            if completed is None:
                logger.info(f"Segment {segment.id} was finalized concurrently, dropping inline result")
                return DispatchOutcome.SKIPPED
            await self.store.increment_completed_segments(segment.task_id)
            logger.info(f"Segment {segment.id} completed inline")
            await self.assembler.try_finalize(segment.task_id)
            return DispatchOutcome.COMPLETED

        if result.correlation_id:
            await self.store.transition_segment(
                segment.id,
                [SegmentStatus.PROCESSING],
                correlation_id=result.correlation_id,
            )
            logger.info(f"Segment {segment.id} awaiting provider callback {result.correlation_id}")
            return DispatchOutcome.AWAITING_CALLBACK

        return await self._retry_or_fail(segment, "Provider returned neither text nor a correlation id")

    async def _retry_or_fail(self, segment: SegmentRecord, error: str) -> DispatchOutcome:
        if segment.attempts >= self.max_attempts:
            return await self._fail(segment, f"{error} (after {segment.attempts} attempts)")

        await self.store.transition_segment(
            segment.id,
            [SegmentStatus.PROCESSING],
            status=SegmentStatus.PENDING,
            error_message=error,
        )
        logger.warning(
            f"Segment {segment.id} attempt {segment.attempts}/{self.max_attempts} failed, "
            f"will retry: {error}"
        )
        return DispatchOutcome.RETRY

    async def _fail(self, segment: SegmentRecord, error: str) -> DispatchOutcome:
        failed = await self.store.transition_segment(
            segment.id,
            [SegmentStatus.PROCESSING],
            status=SegmentStatus.FAILED,
            error_message=error,
            completed_at=self.store.clock(),
        )
        if failed is None:
            return DispatchOutcome.SKIPPED
        logger.error(f"Segment {segment.id} of task {segment.task_id} failed: {error}")
        await self.assembler.try_finalize(segment.task_id)
        return DispatchOutcome.FAILED
