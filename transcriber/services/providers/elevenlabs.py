"""
ElevenLabs speech-to-text client

Submits segment audio in webhook mode: the API answers with a
transcription_id right away and posts the transcript to the webhook
configured in the ElevenLabs dashboard. When the API answers inline
(webhooks disabled for the key) the text is returned directly.
"""

import json
import os
from typing import Any, Optional

import aiofiles
import httpx

from transcriber.core.config import settings
from transcriber.core.errors import (
    ExternalServiceError,
    ProviderInvalidInputError,
    ProviderRateLimitedError,
    ProviderUnavailableError,
    ServiceTimeoutError,
)
from transcriber.core.logging import get_logger
from transcriber.services.providers.base import (
    TranscriptionOptions,
    TranscriptionProvider,
    TranscriptionResult,
)

logger = get_logger(__name__)

SERVICE = "elevenlabs"


class ElevenLabsProvider(TranscriptionProvider):
    name = SERVICE

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key or settings.elevenlabs_api_key
        self.base_url = (base_url or settings.elevenlabs_base_url).rstrip("/")
        self.model = model or settings.elevenlabs_model
        self.timeout = timeout or settings.provider_timeout_seconds
        self._transport = transport

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/speech-to-text"

    def _form_data(self, options: TranscriptionOptions) -> dict[str, str]:
        data = {
            "model_id": self.model,
            "diarize": "true" if options.diarize else "false",
            "tag_audio_events": "true" if options.tag_audio_events else "false",
            "webhook": "true",
        }
        if options.language:
            data["language_code"] = options.language
        if options.metadata:
            data["webhook_metadata"] = json.dumps(options.metadata)
        return data

    async def transcribe(self, audio_ref: str, options: TranscriptionOptions) -> TranscriptionResult:
        if not self.api_key:
            raise ProviderInvalidInputError(SERVICE, "API key not configured")

        try:
            async with aiofiles.open(audio_ref, "rb") as audio_file:
                content = await audio_file.read()
        except FileNotFoundError:
            raise ProviderInvalidInputError(SERVICE, f"Audio file not found: {audio_ref}") from None

        files = {"file": (os.path.basename(audio_ref), content, "application/octet-stream")}

        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
                response = await client.post(
                    self.endpoint,
                    headers={"xi-api-key": self.api_key},
                    data=self._form_data(options),
                    files=files,
                )
        except httpx.TimeoutException as e:
            raise ServiceTimeoutError(SERVICE, f"Request timed out: {e}") from e
        except httpx.HTTPError as e:
            raise ProviderUnavailableError(SERVICE, f"Request failed: {e}") from e

        self._raise_for_status(response)
        return self._parse(response)

    def _raise_for_status(self, response: httpx.Response) -> None:
        status = response.status_code
        if status < 400:
            return

        detail = response.text[:500]
        logger.error(f"ElevenLabs API Error {status}: {detail}")
        if status == 429:
            raise ProviderRateLimitedError(SERVICE, "Rate limited", details={"status": status})
        if status in (408, 504):
            raise ServiceTimeoutError(SERVICE, f"Upstream timeout ({status})")
        if status >= 500:
            raise ProviderUnavailableError(SERVICE, f"Server error ({status})", details={"body": detail})
        raise ProviderInvalidInputError(SERVICE, f"Request rejected ({status})", details={"body": detail})

    def _parse(self, response: httpx.Response) -> TranscriptionResult:
        try:
            body: dict[str, Any] = response.json()
        except ValueError as e:
            raise ExternalServiceError(SERVICE, "Response is not JSON") from e

        if body.get("text") is not None:
            return TranscriptionResult(text=body["text"], language=body.get("language_code"))

        correlation_id = body.get("transcription_id") or body.get("request_id")
        if not correlation_id:
            raise ExternalServiceError(SERVICE, "Response carries neither text nor transcription_id")

        logger.info(f"ElevenLabs accepted transcription {correlation_id}")
        return TranscriptionResult(correlation_id=correlation_id)
