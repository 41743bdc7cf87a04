"""
API Router configuration
"""

from fastapi import APIRouter

from transcriber.api.v1 import (
    cleanup,
    health,
    jobs,
    monitoring,
    queue,
    transcriptions,
    webhooks,
)

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(monitoring.router, tags=["monitoring"])
api_router.include_router(transcriptions.router, prefix="/transcriptions", tags=["transcriptions"])
api_router.include_router(webhooks.router, prefix="/webhooks", tags=["webhooks"])
api_router.include_router(queue.router, prefix="/queue", tags=["queue"])
api_router.include_router(cleanup.router, prefix="/cleanup", tags=["cleanup"])
api_router.include_router(jobs.router, prefix="/jobs", tags=["jobs"])
