"""
Application errors and FastAPI exception handlers
"""

from typing import Any, Optional

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from transcriber.core.logging import get_logger

logger = get_logger(__name__)


class AppError(Exception):
    code: str = "INTERNAL_ERROR"
    status_code: int = 500
    retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(AppError):
    """Bad input. Fails fast, never retried."""

    code = "VALIDATION_ERROR"
    status_code = 400


class NotFoundError(AppError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, resource: str, identifier: Optional[str] = None):
        message = f"{resource} not found"
        details = {"id": identifier} if identifier else None
        super().__init__(message, details=details)
        self.resource = resource


class AuthenticationError(AppError):
    code = "AUTHENTICATION_ERROR"
    status_code = 401


class StoreError(AppError):
    """The task/segment store could not be reached or rejected a write"""

    code = "STORE_ERROR"
    status_code = 500


class ExternalServiceError(AppError):
    """An external dependency call failed. Counted by the circuit breaker."""

    code = "EXTERNAL_SERVICE_ERROR"
    status_code = 502
    retryable = True

    def __init__(self, service: str, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(f"{service}: {message}", details=details)
        self.service = service


class ProviderRateLimitedError(ExternalServiceError):
    code = "PROVIDER_RATE_LIMITED"
    status_code = 429


class ProviderUnavailableError(ExternalServiceError):
    code = "PROVIDER_UNAVAILABLE"
    status_code = 503


class ServiceTimeoutError(ExternalServiceError):
    code = "TIMEOUT_ERROR"
    status_code = 504


class ProviderInvalidInputError(ValidationError):
    """The provider rejected the request itself; retrying cannot help"""

    code = "PROVIDER_INVALID_INPUT"

    def __init__(self, service: str, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(f"{service}: {message}", details=details)
        self.service = service


class CircuitOpenError(AppError):
    """Fast-fail rejection: the dependency is considered down"""

    code = "CIRCUIT_OPEN"
    status_code = 503

    def __init__(self, service: str, retry_after: Optional[float] = None):
        details = {"service": service}
        if retry_after is not None:
            details["retry_after_seconds"] = round(retry_after, 3)
        super().__init__(f"Circuit breaker is open for {service}", details=details)
        self.service = service
        self.retry_after = retry_after


class CorrelationMismatchError(AppError):
    """A provider callback referenced an unknown correlation id"""

    code = "CORRELATION_MISMATCH"
    status_code = 404

    def __init__(self, correlation_id: str):
        super().__init__(
            f"No segment for correlation id {correlation_id}",
            details={"correlation_id": correlation_id},
        )
        self.correlation_id = correlation_id


async def app_exception_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
    else:
        logger.info(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"code": "HTTP_ERROR", "message": str(exc.detail)},
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content={
            "code": "VALIDATION_ERROR",
            "message": "Request validation failed",
            "details": {"errors": jsonable_encoder(exc.errors())},
        },
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=500,
        content={"code": "INTERNAL_SERVER_ERROR", "message": "An unexpected error occurred"},
    )
