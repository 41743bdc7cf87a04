"""
Webhook Correlator

Maps asynchronous provider callbacks back to the segment that was dispatched
with the same correlation id. Callbacks are at-least-once: a repeated or late
callback for a segment that is already terminal changes nothing.
"""

import hashlib
import hmac
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError

from transcriber.core.errors import CorrelationMismatchError
from transcriber.core.logging import get_logger
from transcriber.schemas.webhook import ProviderCallback
from transcriber.services.assembler import TranscriptAssembler
from transcriber.store.base import TaskStore
from transcriber.store.records import ACTIVE_SEGMENT_STATUSES, SegmentStatus

logger = get_logger(__name__)


class CallbackOutcome(str, Enum):
    PROCESSED = "processed"
    NOT_FOUND = "not_found"
    DUPLICATE = "duplicate"
    INVALID = "invalid"


@dataclass
class CallbackResult:
    outcome: CallbackOutcome
    correlation_id: Optional[str] = None
    segment_id: Optional[str] = None
    task_id: Optional[str] = None
    message: Optional[str] = None


def verify_signature(body: bytes, signature: Optional[str], secret: str) -> bool:
    """Check an HMAC-SHA256 signature, with or without the sha256= prefix"""
    if not signature:
        return False
    provided = signature.split("=", 1)[1] if signature.startswith("sha256=") else signature
    expected = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(provided.strip(), expected)


class WebhookCorrelator:
    def __init__(self, store: TaskStore, assembler: TranscriptAssembler):
        self.store = store
        self.assembler = assembler

    async def handle_provider_callback(self, payload: Any) -> CallbackResult:
        if not isinstance(payload, dict):
            logger.warning("Discarding provider callback: body is not an object")
            return CallbackResult(CallbackOutcome.INVALID, message="Body is not an object")

        try:
            callback = ProviderCallback.from_payload(payload)
        except (ValueError, PydanticValidationError) as e:
            logger.warning(f"Discarding invalid provider callback: {e}")
            return CallbackResult(CallbackOutcome.INVALID, message=str(e))

        segment = await self.store.get_segment_by_correlation_id(callback.correlation_id)
        if segment is None:
            error = CorrelationMismatchError(callback.correlation_id)
            logger.warning(f"Discarding provider callback: {error.message}")
            return CallbackResult(
                CallbackOutcome.NOT_FOUND,
                correlation_id=callback.correlation_id,
                message=error.message,
            )

        if segment.status.is_terminal:
            return self._duplicate(callback, segment.id, segment.task_id, segment.status)

        now = self.store.clock()
        if callback.status == "completed":
            updated = await self.store.transition_segment(
                segment.id,
                ACTIVE_SEGMENT_STATUSES,
                status=SegmentStatus.COMPLETED,
                transcription_text=callback.text,
                language=callback.language,
                error_message=None,
                completed_at=now,
            )
        else:
            updated = await self.store.transition_segment(
                segment.id,
                ACTIVE_SEGMENT_STATUSES,
                status=SegmentStatus.FAILED,
                error_message=callback.error,
                completed_at=now,
            )

        if updated is None:
            # Lost the race against another delivery of the same callback
            current = await self.store.get_segment(segment.id)
            status = current.status if current else segment.status
            return self._duplicate(callback, segment.id, segment.task_id, status)

        if updated.status == SegmentStatus.COMPLETED:
            await self.store.increment_completed_segments(updated.task_id)
            logger.info(f"Segment {updated.id} completed via callback {callback.correlation_id}")
        else:
            logger.error(f"Segment {updated.id} failed via callback: {callback.error}")

        await self.assembler.try_finalize(updated.task_id)
        return CallbackResult(
            CallbackOutcome.PROCESSED,
            correlation_id=callback.correlation_id,
            segment_id=updated.id,
            task_id=updated.task_id,
        )

    def _duplicate(
        self,
        callback: ProviderCallback,
        segment_id: str,
        task_id: str,
        status: SegmentStatus,
    ) -> CallbackResult:
        logger.info(
            f"Ignoring duplicate callback {callback.correlation_id} for segment "
            f"{segment_id} already {status.value}"
        )
        return CallbackResult(
            CallbackOutcome.DUPLICATE,
            correlation_id=callback.correlation_id,
            segment_id=segment_id,
            task_id=task_id,
        )
