"""
Monitoring endpoints
"""

from fastapi import APIRouter

from transcriber.core.config import settings
from transcriber.core.deps import CleanupServiceDep, QueueProcessorDep, RegistryDep
from transcriber.core.logging import get_logger
from transcriber.schemas.monitoring import BreakerStatsResponse, MonitoringResponse

logger = get_logger(__name__)

router = APIRouter()


@router.get("/monitoring", response_model=MonitoringResponse)
async def monitoring(
    breakers: RegistryDep,
    processor: QueueProcessorDep,
    cleanup: CleanupServiceDep,
):
    return MonitoringResponse(
        healthy=breakers.health(settings.critical_dependencies),
        circuit_breakers=breakers.all_stats(),
        queue=await processor.queue_stats(),
        tasks=await cleanup.cleanup_stats(),
    )


@router.post("/circuit-breakers/{name}/reset", response_model=BreakerStatsResponse)
async def reset_circuit_breaker(name: str, breakers: RegistryDep):
    breaker = breakers.get(name)
    breaker.force_reset()
    logger.info(f"Circuit breaker '{name}' reset through the API")
    return breaker.stats()
