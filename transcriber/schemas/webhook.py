"""
Provider Callback Schemas
"""

from typing import Any, Literal, Optional

from pydantic import BaseModel

COMPLETED_STATUSES = {"completed", "complete", "success", "succeeded", "done"}
FAILED_STATUSES = {"failed", "failure", "error", "errored"}


class ProviderCallback(BaseModel):
    correlation_id: str
    status: Literal["completed", "failed"]
    text: Optional[str] = None
    language: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "ProviderCallback":
        """
        Normalize the provider's callback body.

        The id may arrive as task_id, request_id or transcription_id, either
        at the top level or inside a data envelope. Text is read from
        result.text, transcription.text or text. Without a status the
        callback counts as completed unless it carries an error.
        """
        body = dict(payload)
        if isinstance(body.get("data"), dict):
            body = {**body, **body["data"]}

        correlation_id = body.get("task_id") or body.get("request_id") or body.get("transcription_id")
        if not correlation_id:
            raise ValueError("Missing task_id, request_id or transcription_id")

        result = body.get("result") or body.get("transcription") or {}
        if not isinstance(result, dict):
            result = {"text": result}
        text = result.get("text", body.get("text"))
        language = result.get("language_code") or body.get("language_code")

        error = body.get("error")
        if isinstance(error, dict):
            error = error.get("message") or str(error)

        raw_status = str(body.get("status") or "").lower()
        if raw_status in FAILED_STATUSES or (not raw_status and error):
            status = "failed"
        elif raw_status in COMPLETED_STATUSES or not raw_status:
            status = "completed"
        else:
            raise ValueError(f"Unknown status {raw_status!r}")

        if status == "completed" and text is None:
            raise ValueError("Completed callback without text")

        return cls(
            correlation_id=str(correlation_id),
            status=status,
            text=text,
            language=language,
            error=error or ("Provider reported failure" if status == "failed" else None),
        )


class CallbackResponse(BaseModel):
    outcome: str
    correlation_id: Optional[str] = None
    segment_id: Optional[str] = None
    message: Optional[str] = None
