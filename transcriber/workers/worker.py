"""
Worker Entry Point

Starts the Redis Queue (RQ) worker. Jobs run in the worker process itself
instead of a forked child, so circuit breaker state carries over from one
job to the next.
"""

from redis import Redis
from rq import Queue, SimpleWorker

from transcriber.core.config import settings
from transcriber.core.logging import get_logger, setup_logging

logger = get_logger(__name__)

listen = settings.worker_queues


def main() -> None:
    setup_logging()

    conn = Redis.from_url(settings.redis_url)
    queues = [Queue(name, connection=conn) for name in listen]
    worker = SimpleWorker(queues, connection=conn)
    logger.info(f"Worker started. Listening on: {listen}")
    worker.work()


if __name__ == "__main__":
    main()
