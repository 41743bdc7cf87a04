"""
Segment processing job
"""

import asyncio

from transcriber.core.logging import get_logger
from transcriber.infra.db import AsyncSessionLocal, close_db_connection
from transcriber.services.assembler import TranscriptAssembler
from transcriber.services.circuit_breaker import (
    PROVIDER_BREAKER,
    init_circuit_breakers,
)
from transcriber.services.providers import get_provider
from transcriber.services.queue_processor import SegmentQueueProcessor
from transcriber.store.sql import SqlAlchemyStore

logger = get_logger(__name__)


async def _process_segments_logic(max_concurrent: int | None = None) -> dict:
    # Shared by every job run by the same SimpleWorker
    breakers = init_circuit_breakers()
    store = SqlAlchemyStore(AsyncSessionLocal)
    processor = SegmentQueueProcessor(
        store,
        get_provider(),
        breakers.get(PROVIDER_BREAKER),
        TranscriptAssembler(store),
    )
    try:
        result = await processor.process_queue(max_concurrent)
    finally:
        # Each job runs in a fresh event loop; pooled connections cannot be reused
        await close_db_connection()

    return {
        "processed_count": result.processed_count,
        "remaining_count": result.remaining_count,
        "outcomes": result.outcomes,
    }


def process_segments(max_concurrent: int | None = None) -> dict:
    """
    RQ Job entry point (Sync wrapper)
    """
    return asyncio.run(_process_segments_logic(max_concurrent))
