"""
Client webhook delivery

Posts the task outcome to the URL the client supplied at submission.
Delivery is attempted once; any 2xx counts as delivered.
"""

import hashlib
import hmac
import json
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from transcriber.core.config import settings
from transcriber.core.logging import get_logger
from transcriber.core.time import to_iso
from transcriber.store.records import TaskRecord

logger = get_logger(__name__)

SIGNATURE_HEADER = "X-Webhook-Signature"
USER_AGENT = "transcriber-orchestrator/1.0"

WEBHOOK_DELIVERED = "delivered"
WEBHOOK_FAILED = "failed"
WEBHOOK_SKIPPED = "skipped"


@dataclass
class DeliveryResult:
    delivered: bool
    status_code: Optional[int] = None
    error: Optional[str] = None

    @property
    def webhook_status(self) -> str:
        return WEBHOOK_DELIVERED if self.delivered else WEBHOOK_FAILED


def build_payload(task: TaskRecord) -> dict[str, Any]:
    payload = {
        "taskId": task.id,
        "status": task.status.value,
        "transcription": task.final_transcript,
        "language": task.language,
        "originalFilename": task.original_filename,
        "completedAt": to_iso(task.completed_at),
    }
    if task.error_message:
        payload["error"] = task.error_message
    return payload


def sign_payload(body: bytes, secret: str) -> str:
    digest = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return f"sha256={digest}"


class ClientWebhookNotifier:
    def __init__(
        self,
        secret: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.secret = secret if secret is not None else settings.webhook_signing_secret
        self.timeout = timeout or settings.webhook_timeout_seconds
        self._transport = transport

    async def deliver(self, url: str, payload: dict[str, Any]) -> DeliveryResult:
        body = json.dumps(payload, separators=(",", ":")).encode()
        headers = {"Content-Type": "application/json", "User-Agent": USER_AGENT}
        if self.secret:
            headers[SIGNATURE_HEADER] = sign_payload(body, self.secret)

        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
                response = await client.post(url, content=body, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"Webhook delivery to {url} failed: {e!r}")
            return DeliveryResult(delivered=False, error=str(e) or type(e).__name__)

        if response.is_success:
            logger.info(f"Webhook delivered to {url} ({response.status_code})")
            return DeliveryResult(delivered=True, status_code=response.status_code)

        logger.error(f"Webhook delivery to {url} rejected with {response.status_code}")
        return DeliveryResult(
            delivered=False,
            status_code=response.status_code,
            error=f"HTTP {response.status_code}",
        )
