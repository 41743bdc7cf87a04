from transcriber.models.base import Base
from transcriber.models.segment import TranscriptionSegment
from transcriber.models.task import TranscriptionTask

__all__ = [
    "Base",
    "TranscriptionTask",
    "TranscriptionSegment",
]
