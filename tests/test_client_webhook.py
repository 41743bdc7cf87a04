"""
Client Webhook Delivery Tests
"""

import hashlib
import hmac
import json

import httpx
import pytest

from transcriber.services.client_webhook import (
    SIGNATURE_HEADER,
    ClientWebhookNotifier,
    build_payload,
)
from transcriber.store.records import TaskRecord, TaskStatus

URL = "https://client.example.com/hook"


def recording_transport(status_code=200):
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(status_code)

    return httpx.MockTransport(handler), requests


@pytest.mark.asyncio
async def test_delivery_posts_signed_json():
    transport, requests = recording_transport(204)
    notifier = ClientWebhookNotifier(secret="s3cret", transport=transport)

    result = await notifier.deliver(URL, {"taskId": "t-1", "status": "completed"})

    assert result.delivered is True
    assert result.status_code == 204
    assert result.webhook_status == "delivered"

    [request] = requests
    body = request.read()
    assert json.loads(body) == {"taskId": "t-1", "status": "completed"}
    assert request.headers["content-type"] == "application/json"
    expected = hmac.new(b"s3cret", body, hashlib.sha256).hexdigest()
    assert request.headers[SIGNATURE_HEADER] == f"sha256={expected}"


@pytest.mark.asyncio
async def test_unsigned_when_no_secret():
    transport, requests = recording_transport()
    notifier = ClientWebhookNotifier(secret="", transport=transport)

    await notifier.deliver(URL, {"taskId": "t-1"})

    assert SIGNATURE_HEADER not in requests[0].headers


@pytest.mark.asyncio
async def test_non_2xx_is_not_delivered():
    transport, requests = recording_transport(500)
    notifier = ClientWebhookNotifier(secret="", transport=transport)

    result = await notifier.deliver(URL, {"taskId": "t-1"})

    assert result.delivered is False
    assert result.status_code == 500
    assert result.webhook_status == "failed"
    assert len(requests) == 1


@pytest.mark.asyncio
async def test_connection_errors_are_reported_not_raised():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    notifier = ClientWebhookNotifier(secret="", transport=httpx.MockTransport(handler))

    result = await notifier.deliver(URL, {"taskId": "t-1"})

    assert result.delivered is False
    assert result.status_code is None
    assert "connection refused" in result.error


def test_build_payload():
    task = TaskRecord(
        original_filename="meeting.mp3",
        status=TaskStatus.FAILED,
        error_message="1 of 2 segment(s) failed to process",
    )

    payload = build_payload(task)

    assert payload["taskId"] == task.id
    assert payload["status"] == "failed"
    assert payload["transcription"] is None
    assert payload["originalFilename"] == "meeting.mp3"
    assert payload["error"] == "1 of 2 segment(s) failed to process"
    assert "error" not in build_payload(TaskRecord(original_filename="a.mp3"))
