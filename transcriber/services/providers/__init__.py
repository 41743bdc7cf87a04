from transcriber.core.config import settings
from transcriber.core.logging import get_logger
from transcriber.services.providers.base import (
    TranscriptionOptions,
    TranscriptionProvider,
    TranscriptionResult,
)
from transcriber.services.providers.elevenlabs import ElevenLabsProvider
from transcriber.services.providers.mock import MockProvider

logger = get_logger(__name__)


def get_provider() -> TranscriptionProvider:
    """Provider selected by settings; falls back to the mock without an API key"""
    if settings.use_mock_provider:
        if settings.transcription_provider != "MOCK":
            logger.warning("No ElevenLabs API key configured, using the mock provider")
        return MockProvider()
    return ElevenLabsProvider()


__all__ = [
    "TranscriptionOptions",
    "TranscriptionProvider",
    "TranscriptionResult",
    "ElevenLabsProvider",
    "MockProvider",
    "get_provider",
]
