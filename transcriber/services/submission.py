"""
Transcription submission

Validates an upload, stores it, splits it into segments and creates the
task with all of its segments pending.
"""

import os
from typing import Optional
from urllib.parse import urlparse

from transcriber.core.config import settings
from transcriber.core.errors import ValidationError
from transcriber.core.logging import get_logger
from transcriber.infra.storage import ArtifactStorage
from transcriber.services.splitting import (
    SUPPORTED_EXTENSIONS,
    AudioSplitter,
    FfmpegSplitter,
    plan_segments,
    validate_partition,
)
from transcriber.store.base import TaskStore
from transcriber.store.records import SegmentRecord, TaskRecord, new_id

logger = get_logger(__name__)


def validate_upload(filename: Optional[str], size: int) -> None:
    if not filename:
        raise ValidationError("A file is required")
    extension = os.path.splitext(filename)[1].lower()
    if extension not in SUPPORTED_EXTENSIONS:
        raise ValidationError(
            f"Unsupported file format. Supported formats: {', '.join(SUPPORTED_EXTENSIONS)}",
            details={"filename": filename},
        )
    if size <= 0:
        raise ValidationError("File is empty")
    if size > settings.max_upload_bytes:
        raise ValidationError(
            f"File too large. Maximum size is {settings.max_upload_bytes // (1024 * 1024)}MB",
            details={"size": size},
        )


def validate_webhook_url(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValidationError("Webhook URL must be an http or https URL", details={"webhook_url": url})
    return url


def estimate_duration(size: int, bitrate_kbps: Optional[int] = None) -> float:
    """Rough duration from file size; informational only"""
    bitrate = bitrate_kbps or settings.assumed_bitrate_kbps
    return round(size * 8 / (bitrate * 1000), 1)


class TranscriptionSubmitter:
    def __init__(
        self,
        store: TaskStore,
        storage: Optional[ArtifactStorage] = None,
        splitter: Optional[AudioSplitter] = None,
        segment_seconds: Optional[int] = None,
    ):
        self.store = store
        self.storage = storage or ArtifactStorage()
        self.splitter = splitter or FfmpegSplitter()
        self.segment_seconds = segment_seconds or settings.segment_duration_seconds

    async def submit(
        self,
        filename: str,
        content: bytes,
        webhook_url: Optional[str] = None,
    ) -> TaskRecord:
        validate_upload(filename, len(content))
        webhook_url = validate_webhook_url(webhook_url)

        task_id = new_id()
        source_path = await self.storage.save(task_id, filename, content)
        segment_paths: list[str] = []
        try:
            duration = await self.splitter.probe_duration(source_path)
            specs = plan_segments(duration, self.segment_seconds)
            validate_partition(specs, duration)
            segment_paths = await self.splitter.split(
                source_path,
                specs,
                str(self.storage.segment_dir(task_id)),
            )

            segments = [
                SegmentRecord(
                    task_id=task_id,
                    start_time=spec.start_time,
                    end_time=spec.end_time,
                    file_path=path,
                )
                for spec, path in zip(specs, segment_paths)
            ]
            task = await self.store.create_task(
                TaskRecord(
                    id=task_id,
                    original_filename=os.path.basename(filename),
                    client_webhook_url=webhook_url,
                    source_path=source_path,
                    estimated_duration=estimate_duration(len(content)),
                ),
                segments,
            )
        except Exception:
            await self._discard(task_id, [source_path, *segment_paths])
            raise

        logger.info(
            f"Task {task.id} created for {task.original_filename}: "
            f"{duration:.1f}s in {task.total_segments} segment(s)"
        )
        return task

    async def _discard(self, task_id: str, refs: list[str]) -> None:
        for ref in refs:
            try:
                await self.storage.delete(ref)
            except OSError as e:
                logger.warning(f"Could not remove {ref} after a failed submission: {e}")
        await self.storage.remove_task_dir(task_id)
