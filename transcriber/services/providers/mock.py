"""
Mock provider

Used when no provider API key is configured. Answers inline after a short
simulated latency, or hands out correlation ids when deferred is set.
"""

import asyncio
import os
import uuid

from transcriber.core.logging import get_logger
from transcriber.services.providers.base import (
    TranscriptionOptions,
    TranscriptionProvider,
    TranscriptionResult,
)

logger = get_logger(__name__)


class MockProvider(TranscriptionProvider):
    name = "mock"

    def __init__(self, latency: float = 0.1, deferred: bool = False):
        self.latency = latency
        self.deferred = deferred

    async def transcribe(self, audio_ref: str, options: TranscriptionOptions) -> TranscriptionResult:
        # Simulate latency
        await asyncio.sleep(self.latency)

        if self.deferred:
            correlation_id = f"mock-{uuid.uuid4().hex}"
            logger.debug(f"Mock provider deferred {audio_ref} as {correlation_id}")
            return TranscriptionResult(correlation_id=correlation_id)

        name = os.path.basename(audio_ref)
        return TranscriptionResult(
            text=f"[mock transcript of {name}]",
            language=options.language or "en",
        )
