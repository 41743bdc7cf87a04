"""
Transcript Assembler Tests
"""

import logging

import pytest

from transcriber.services.assembler import TranscriptAssembler, assemble
from transcriber.services.client_webhook import DeliveryResult
from transcriber.store.records import SegmentRecord, SegmentStatus, TaskStatus


async def complete(store, segment, text, language=None):
    await store.update_segment(
        segment.id,
        status=SegmentStatus.COMPLETED,
        transcription_text=text,
        language=language,
    )


@pytest.mark.asyncio
async def test_out_of_order_completion_assembles_by_start_time(assembler, store, create_task, notifier):
    task, segments = await create_task(4)

    await complete(store, segments[2], "  gamma ")
    await complete(store, segments[0], "alpha")
    await complete(store, segments[3], "   ")
    assert await assembler.try_finalize(task.id) is None

    await complete(store, segments[1], "beta")
    finalized = await assembler.try_finalize(task.id)

    assert finalized.status == TaskStatus.COMPLETED
    assert finalized.final_transcript == "alpha beta gamma"
    assert finalized.completed_segments == 4
    assert finalized.completed_at is not None
    assert finalized.webhook_status == "delivered"

    url, payload = notifier.deliver.await_args.args
    assert url == "https://client.example.com/hook"
    assert payload["taskId"] == task.id
    assert payload["status"] == "completed"
    assert payload["transcription"] == "alpha beta gamma"
    assert payload["originalFilename"] == "meeting.mp3"
    assert payload["completedAt"] is not None


@pytest.mark.asyncio
async def test_try_finalize_is_idempotent(assembler, store, create_task, notifier):
    task, segments = await create_task(2)
    for segment in segments:
        await complete(store, segment, "x")

    assert await assembler.try_finalize(task.id) is not None
    assert await assembler.try_finalize(task.id) is None

    notifier.deliver.assert_awaited_once()


@pytest.mark.asyncio
async def test_detected_language_is_stored_and_sent(assembler, store, create_task, notifier):
    task, segments = await create_task(3)
    await complete(store, segments[0], "hola", language="es")
    await complete(store, segments[1], "hello", language="en")
    await complete(store, segments[2], "adios", language="es")

    finalized = await assembler.try_finalize(task.id)

    assert finalized.language == "es"
    assert (await store.get_task(task.id)).language == "es"
    _, payload = notifier.deliver.await_args.args
    assert payload["language"] == "es"


@pytest.mark.asyncio
async def test_no_op_while_segments_in_flight(assembler, store, create_task):
    task, segments = await create_task(2)
    await complete(store, segments[0], "x")
    await store.update_segment(segments[1].id, status=SegmentStatus.PROCESSING)

    assert await assembler.try_finalize(task.id) is None
    assert (await store.get_task(task.id)).status == TaskStatus.PROCESSING


@pytest.mark.asyncio
async def test_failed_segments_fail_task_without_notification(assembler, store, create_task, notifier):
    task, segments = await create_task(3)
    await complete(store, segments[0], "a")
    await store.update_segment(segments[1].id, status=SegmentStatus.FAILED, error_message="boom")
    await complete(store, segments[2], "c")

    finalized = await assembler.try_finalize(task.id)

    assert finalized.status == TaskStatus.FAILED
    assert finalized.error_message == "1 of 3 segment(s) failed to process"
    assert finalized.final_transcript is None
    assert finalized.completed_at is not None
    notifier.deliver.assert_not_awaited()


@pytest.mark.asyncio
async def test_failure_notification_when_enabled(store, create_task, notifier):
    assembler = TranscriptAssembler(store, notifier, notify_on_failure=True)
    task, segments = await create_task(2)
    for segment in segments:
        await store.update_segment(segment.id, status=SegmentStatus.FAILED, error_message="boom")

    await assembler.try_finalize(task.id)

    payload = notifier.deliver.await_args.args[1]
    assert payload["status"] == "failed"
    assert payload["error"] == "2 of 2 segment(s) failed to process"
    assert payload["transcription"] is None


@pytest.mark.asyncio
async def test_missing_webhook_url_is_skipped(assembler, store, create_task, notifier):
    task, [segment] = await create_task(1, webhook_url=None)
    await complete(store, segment, "solo")

    finalized = await assembler.try_finalize(task.id)

    assert finalized.webhook_status == "skipped"
    notifier.deliver.assert_not_awaited()


@pytest.mark.asyncio
async def test_failed_delivery_is_recorded_not_raised(assembler, store, create_task, notifier):
    notifier.deliver.return_value = DeliveryResult(delivered=False, status_code=500, error="HTTP 500")
    task, [segment] = await create_task(1)
    await complete(store, segment, "solo")

    finalized = await assembler.try_finalize(task.id)

    assert finalized.status == TaskStatus.COMPLETED
    assert finalized.webhook_status == "failed"


@pytest.mark.asyncio
async def test_unknown_task_is_ignored(assembler):
    assert await assembler.try_finalize("00000000-0000-0000-0000-000000000000") is None


def test_assemble_logs_gaps_and_overlaps(caplog):
    segments = [
        SegmentRecord(task_id="t", start_time=0, end_time=10, transcription_text="one", language="en"),
        SegmentRecord(task_id="t", start_time=12, end_time=20, transcription_text="two", language="en"),
        SegmentRecord(task_id="t", start_time=19, end_time=30, transcription_text="three", language="fr"),
    ]

    with caplog.at_level(logging.WARNING, logger="transcriber.services.assembler"):
        assembled = assemble(reversed(segments))

    assert assembled.text == "one two three"
    assert assembled.language == "en"
    assert len(assembled.segment_texts) == 3
    messages = " ".join(r.getMessage() for r in caplog.records)
    assert "Gap of 2.00s" in messages
    assert "overlap by 1.00s" in messages
