"""
Speech-to-text provider interface
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass
class TranscriptionOptions:
    language: Optional[str] = None
    diarize: bool = True
    tag_audio_events: bool = True
    # Echoed back by providers that support it; only used for tracing
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class TranscriptionResult:
    """
    Either text (the provider answered inline) or correlation_id (the result
    arrives later through the provider webhook).
    """

    text: Optional[str] = None
    correlation_id: Optional[str] = None
    language: Optional[str] = None

    @property
    def is_deferred(self) -> bool:
        return self.text is None and self.correlation_id is not None


class TranscriptionProvider(ABC):
    name: str = "provider"

    @abstractmethod
    async def transcribe(self, audio_ref: str, options: TranscriptionOptions) -> TranscriptionResult:
        """
        Submit one audio artifact.

        Raises ProviderRateLimitedError, ProviderUnavailableError and
        ServiceTimeoutError for transient failures and
        ProviderInvalidInputError when the request itself was rejected.
        """
