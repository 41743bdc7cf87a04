"""
Provider webhook endpoint

Answers 200 for every well-formed body, matched or not, so the provider does
not keep redelivering callbacks the service has already decided to drop.
"""

import json

from fastapi import APIRouter, Request

from transcriber.core.config import settings
from transcriber.core.deps import CorrelatorDep
from transcriber.core.errors import AuthenticationError, ValidationError
from transcriber.core.logging import get_logger
from transcriber.schemas.webhook import CallbackResponse
from transcriber.services.webhook_correlator import verify_signature

logger = get_logger(__name__)

router = APIRouter()

SIGNATURE_HEADER = "X-Provider-Signature"


@router.post("/provider", response_model=CallbackResponse)
async def provider_callback(request: Request, correlator: CorrelatorDep):
    body = await request.body()

    if settings.provider_webhook_secret:
        signature = request.headers.get(SIGNATURE_HEADER)
        if not verify_signature(body, signature, settings.provider_webhook_secret):
            raise AuthenticationError("Invalid webhook signature")

    try:
        payload = json.loads(body)
    except (UnicodeDecodeError, json.JSONDecodeError):
        raise ValidationError("Body must be a JSON object") from None
    if not isinstance(payload, dict):
        raise ValidationError("Body must be a JSON object")

    result = await correlator.handle_provider_callback(payload)
    return CallbackResponse(
        outcome=result.outcome.value,
        correlation_id=result.correlation_id,
        segment_id=result.segment_id,
        message=result.message,
    )
