"""
Segment Queue Processor Tests
"""

import asyncio
from unittest.mock import AsyncMock, call

import pytest

from transcriber.core.errors import (
    ProviderInvalidInputError,
    ProviderRateLimitedError,
    ProviderUnavailableError,
    StoreError,
    ValidationError,
)
from transcriber.services.circuit_breaker import CircuitBreaker, CircuitBreakerConfig, CircuitState
from transcriber.services.providers.base import TranscriptionResult
from transcriber.services.queue_processor import SegmentQueueProcessor
from transcriber.store.records import SegmentStatus, TaskStatus


@pytest.mark.asyncio
async def test_inline_results_complete_segments_and_finalize_task(processor, store, create_task, notifier):
    task, segments = await create_task(3)

    result = await processor.process_queue()

    assert result.processed_count == 3
    assert result.remaining_count == 0
    assert result.outcomes == {"completed": 3}

    task = await store.get_task(task.id)
    assert task.status == TaskStatus.COMPLETED
    assert task.completed_segments == 3
    assert task.final_transcript == "text for segment_0 text for segment_1 text for segment_2"
    notifier.deliver.assert_awaited_once()


@pytest.mark.asyncio
async def test_deferred_results_keep_segments_processing(processor, store, provider, create_task):
    task, segments = await create_task(2)
    for i, segment in enumerate(segments):
        provider.script(segment.file_path, TranscriptionResult(correlation_id=f"corr-{i}"))

    result = await processor.process_queue()

    assert result.outcomes == {"awaiting_callback": 2}
    stored = await store.list_segments(task.id)
    assert [s.status for s in stored] == [SegmentStatus.PROCESSING] * 2
    assert [s.correlation_id for s in stored] == ["corr-0", "corr-1"]
    assert all(s.attempts == 1 for s in stored)
    assert (await store.get_task(task.id)).status == TaskStatus.PROCESSING


@pytest.mark.asyncio
async def test_stale_processing_segment_is_redispatched(processor, store, provider, clock, create_task):
    task, [segment] = await create_task(1)
    await store.update_segment(segment.id, status=SegmentStatus.PROCESSING, attempts=1)

    clock.advance(61)
    result = await processor.process_queue()

    assert provider.calls == [segment.file_path]
    assert result.processed_count == 1
    stored = await store.get_segment(segment.id)
    assert stored.status == SegmentStatus.COMPLETED
    assert stored.attempts == 2


@pytest.mark.asyncio
async def test_recent_processing_segment_is_left_alone(processor, store, provider, clock, create_task):
    task, [segment] = await create_task(1)
    await store.update_segment(segment.id, status=SegmentStatus.PROCESSING, attempts=1)

    clock.advance(30)
    result = await processor.process_queue()

    assert provider.calls == []
    assert result.processed_count == 0
    assert (await store.get_segment(segment.id)).status == SegmentStatus.PROCESSING


@pytest.mark.asyncio
async def test_retryable_errors_retry_until_attempts_exhausted(processor, store, provider, create_task):
    task, [segment] = await create_task(1)
    provider.script(
        segment.file_path,
        ProviderUnavailableError("fake", "503"),
        ProviderRateLimitedError("fake", "429"),
        ProviderUnavailableError("fake", "503"),
    )

    first = await processor.process_queue()
    assert first.outcomes == {"retry": 1}
    assert first.remaining_count == 1
    stored = await store.get_segment(segment.id)
    assert stored.status == SegmentStatus.PENDING
    assert stored.attempts == 1
    assert "503" in stored.error_message

    await processor.process_queue()
    third = await processor.process_queue()

    assert third.outcomes == {"failed": 1}
    stored = await store.get_segment(segment.id)
    assert stored.status == SegmentStatus.FAILED
    assert stored.attempts == 3

    task = await store.get_task(task.id)
    assert task.status == TaskStatus.FAILED
    assert task.error_message == "1 of 1 segment(s) failed to process"


@pytest.mark.asyncio
async def test_invalid_input_fails_without_retry(processor, store, provider, create_task):
    task, [segment] = await create_task(1)
    provider.script(segment.file_path, ProviderInvalidInputError("fake", "unsupported codec"))

    result = await processor.process_queue()

    assert result.outcomes == {"failed": 1}
    assert (await store.get_segment(segment.id)).status == SegmentStatus.FAILED
    assert (await store.get_task(task.id)).status == TaskStatus.FAILED


@pytest.mark.asyncio
async def test_open_breaker_leaves_segments_pending(store, provider, assembler, breaker_clock, create_task, sleep):
    breaker = CircuitBreaker("provider", CircuitBreakerConfig(failure_threshold=1), clock=breaker_clock)

    async def boom():
        raise ProviderUnavailableError("fake", "down")

    with pytest.raises(ProviderUnavailableError):
        await breaker.call(boom)
    assert breaker.state == CircuitState.OPEN

    processor = SegmentQueueProcessor(store, provider, breaker, assembler, sleep=sleep)
    task, segments = await create_task(2)

    result = await processor.process_queue()

    assert provider.calls == []
    assert result.processed_count == 0
    assert result.remaining_count == 2
    assert result.outcomes == {"rejected": 2}
    for segment in await store.list_segments(task.id):
        assert segment.status == SegmentStatus.PENDING
        assert segment.attempts == 0


@pytest.mark.asyncio
async def test_same_task_dispatches_are_staggered(processor, create_task, sleep):
    await create_task(3)

    await processor.process_queue()

    assert sorted(sleep.await_args_list, key=lambda c: c.args[0]) == [call(2.0), call(4.0)]


@pytest.mark.asyncio
async def test_unrelated_tasks_are_not_delayed(processor, create_task, sleep):
    await create_task(1)
    await create_task(1)

    await processor.process_queue()

    sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_batches_respect_max_concurrent(processor, provider, create_task):
    for _ in range(5):
        await create_task(1)
    provider.latency = 0.01

    result = await processor.process_queue(max_concurrent=2)

    assert result.processed_count == 5
    assert provider.max_in_flight == 2


@pytest.mark.asyncio
@pytest.mark.parametrize("max_concurrent", [0, -1])
async def test_non_positive_max_concurrent_is_rejected(processor, provider, create_task, max_concurrent):
    await create_task(1)

    with pytest.raises(ValidationError):
        await processor.process_queue(max_concurrent=max_concurrent)

    assert provider.calls == []


@pytest.mark.asyncio
async def test_provider_timeout_counts_as_breaker_failure(store, provider, breaker, assembler, create_task, sleep):
    processor = SegmentQueueProcessor(store, provider, breaker, assembler, call_timeout=0.01, sleep=sleep)
    task, [segment] = await create_task(1)
    provider.latency = 1.0

    result = await processor.process_queue()

    assert result.outcomes == {"retry": 1}
    stored = await store.get_segment(segment.id)
    assert stored.status == SegmentStatus.PENDING
    assert "No response within" in stored.error_message
    assert breaker.failure_count == 1


@pytest.mark.asyncio
async def test_segment_without_audio_file_fails(processor, store, create_task):
    task, [segment] = await create_task(1)
    await store.update_segment(segment.id, file_path=None)

    result = await processor.process_queue()

    assert result.outcomes == {"failed": 1}
    assert (await store.get_segment(segment.id)).error_message == "Segment has no audio file"


@pytest.mark.asyncio
async def test_store_errors_propagate(processor, store, create_task):
    await create_task(1)
    store.transition_segment = AsyncMock(side_effect=StoreError("database is down"))

    with pytest.raises(StoreError):
        await processor.process_queue()


@pytest.mark.asyncio
async def test_concurrent_runs_dispatch_each_segment_once(processor, provider, create_task):
    await create_task(4)
    provider.latency = 0.01

    first, second = await asyncio.gather(processor.process_queue(), processor.process_queue())

    assert len(provider.calls) == 4
    assert first.processed_count + second.processed_count == 4


@pytest.mark.asyncio
async def test_queue_stats_counts_segments_by_status(processor, store, provider, create_task):
    task, segments = await create_task(3)
    provider.script(segments[0].file_path, TranscriptionResult(correlation_id="corr-0"))
    await processor.process_queue(max_concurrent=1)

    stats = await processor.queue_stats()

    assert stats == {"pending": 0, "processing": 1, "completed": 2, "failed": 0, "total": 3}
