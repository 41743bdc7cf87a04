"""
Dependency Injection

FastAPI dependencies for routes. Services are built per request from the
store, provider and breaker registry; tests override get_store,
get_provider, get_notifier, get_splitter, get_storage and get_queue.
"""

from typing import Annotated, AsyncGenerator

from fastapi import Depends
from redis.asyncio import Redis

from transcriber.core.config import settings
from transcriber.infra.db import AsyncSessionLocal
from transcriber.infra.queue import JobQueue, QueueFactory
from transcriber.infra.redis import get_redis
from transcriber.infra.storage import ArtifactStorage
from transcriber.services.assembler import TranscriptAssembler
from transcriber.services.circuit_breaker import (
    PROVIDER_BREAKER,
    CircuitBreakerRegistry,
    registry,
)
from transcriber.services.cleanup import CleanupService
from transcriber.services.client_webhook import ClientWebhookNotifier
from transcriber.services.providers import TranscriptionProvider, get_provider
from transcriber.services.queue_processor import SegmentQueueProcessor
from transcriber.services.splitting import AudioSplitter, FfmpegSplitter
from transcriber.services.status import TaskStatusService
from transcriber.services.submission import TranscriptionSubmitter
from transcriber.services.webhook_correlator import WebhookCorrelator
from transcriber.store.base import TaskStore
from transcriber.store.sql import SqlAlchemyStore

RedisDep = Annotated[Redis, Depends(get_redis)]


def get_store() -> TaskStore:
    return SqlAlchemyStore(AsyncSessionLocal)


def get_breaker_registry() -> CircuitBreakerRegistry:
    return registry


def get_notifier() -> ClientWebhookNotifier:
    return ClientWebhookNotifier()


def get_storage() -> ArtifactStorage:
    return ArtifactStorage()


def get_splitter() -> AudioSplitter:
    return FfmpegSplitter()


async def get_queue() -> AsyncGenerator[JobQueue, None]:
    """Get the transcription job queue. RQ needs a synchronous Redis connection."""
    import redis
    sync_redis = redis.Redis.from_url(settings.redis_url)
    try:
        yield QueueFactory.get_queue(sync_redis, settings.worker_queues[0])
    finally:
        sync_redis.close()


StoreDep = Annotated[TaskStore, Depends(get_store)]
ProviderDep = Annotated[TranscriptionProvider, Depends(get_provider)]
RegistryDep = Annotated[CircuitBreakerRegistry, Depends(get_breaker_registry)]
StorageDep = Annotated[ArtifactStorage, Depends(get_storage)]
QueueDep = Annotated[JobQueue, Depends(get_queue)]


def get_assembler(
    store: StoreDep,
    notifier: Annotated[ClientWebhookNotifier, Depends(get_notifier)],
) -> TranscriptAssembler:
    return TranscriptAssembler(store, notifier)


AssemblerDep = Annotated[TranscriptAssembler, Depends(get_assembler)]


def get_queue_processor(
    store: StoreDep,
    provider: ProviderDep,
    breakers: RegistryDep,
    assembler: AssemblerDep,
) -> SegmentQueueProcessor:
    return SegmentQueueProcessor(store, provider, breakers.get(PROVIDER_BREAKER), assembler)


def get_correlator(store: StoreDep, assembler: AssemblerDep) -> WebhookCorrelator:
    return WebhookCorrelator(store, assembler)


def get_cleanup_service(
    store: StoreDep,
    storage: StorageDep,
    assembler: AssemblerDep,
) -> CleanupService:
    return CleanupService(store, storage, assembler)


def get_submitter(
    store: StoreDep,
    storage: StorageDep,
    splitter: Annotated[AudioSplitter, Depends(get_splitter)],
) -> TranscriptionSubmitter:
    return TranscriptionSubmitter(store, storage, splitter)


def get_status_service(store: StoreDep) -> TaskStatusService:
    return TaskStatusService(store)


QueueProcessorDep = Annotated[SegmentQueueProcessor, Depends(get_queue_processor)]
CorrelatorDep = Annotated[WebhookCorrelator, Depends(get_correlator)]
CleanupServiceDep = Annotated[CleanupService, Depends(get_cleanup_service)]
SubmitterDep = Annotated[TranscriptionSubmitter, Depends(get_submitter)]
StatusServiceDep = Annotated[TaskStatusService, Depends(get_status_service)]
