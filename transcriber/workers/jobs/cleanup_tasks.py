"""
Cleanup job
"""

import asyncio
from dataclasses import asdict

from transcriber.core.logging import get_logger
from transcriber.infra.db import AsyncSessionLocal, close_db_connection
from transcriber.services.cleanup import CleanupService
from transcriber.store.sql import SqlAlchemyStore

logger = get_logger(__name__)


async def _cleanup_logic() -> dict:
    service = CleanupService(SqlAlchemyStore(AsyncSessionLocal))
    try:
        report = await service.perform_cleanup()
    finally:
        await close_db_connection()
    if report.errors:
        logger.warning(f"Cleanup left {len(report.errors)} task(s) for the next run")
    return asdict(report)


def cleanup_tasks() -> dict:
    """
    RQ Job entry point (Sync wrapper)
    """
    return asyncio.run(_cleanup_logic())
