"""
Health endpoint
"""

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError

from transcriber.core.config import settings
from transcriber.core.deps import RedisDep, RegistryDep, StoreDep
from transcriber.core.errors import AppError
from transcriber.core.logging import get_logger
from transcriber.schemas.monitoring import HealthResponse
from transcriber.services.circuit_breaker import DATABASE_BREAKER

logger = get_logger(__name__)

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health_check(store: StoreDep, redis: RedisDep, breakers: RegistryDep):
    """Check the database, Redis and the critical circuit breakers."""
    checks = {"api": "ok"}

    try:
        if DATABASE_BREAKER in breakers:
            await breakers.get(DATABASE_BREAKER).call(store.ping)
        else:
            await store.ping()
        checks["database"] = "ok"
    except AppError as e:
        logger.warning(f"Health check: database unavailable: {e.message}")
        checks["database"] = "error"

    try:
        await redis.ping()
        checks["redis"] = "ok"
    except (RedisError, OSError) as e:
        logger.warning(f"Health check: redis unavailable: {e}")
        checks["redis"] = "error"

    breakers_ok = breakers.health(settings.critical_dependencies)
    checks["circuit_breakers"] = "ok" if breakers_ok else "open"

    healthy = breakers_ok and checks["database"] == "ok"
    body = HealthResponse(status="ok" if healthy else "degraded", checks=checks)
    return JSONResponse(status_code=200 if healthy else 503, content=body.model_dump())
