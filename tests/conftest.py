"""
Conftest
"""

import asyncio
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import AsyncGenerator, Sequence
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from transcriber.core import deps
from transcriber.infra.queue import EnqueuedJob
from transcriber.infra.redis import get_redis
from transcriber.infra.storage import ArtifactStorage
from transcriber.main import app
from transcriber.models.base import Base
from transcriber.services.assembler import TranscriptAssembler
from transcriber.services.circuit_breaker import (
    PROVIDER_BREAKER,
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
    init_circuit_breakers,
)
from transcriber.services.client_webhook import ClientWebhookNotifier, DeliveryResult
from transcriber.services.providers.base import (
    TranscriptionOptions,
    TranscriptionProvider,
    TranscriptionResult,
)
from transcriber.services.queue_processor import SegmentQueueProcessor
from transcriber.services.splitting import AudioSplitter, SegmentSpec
from transcriber.store.memory import InMemoryStore
from transcriber.store.records import SegmentRecord, TaskRecord
from transcriber.store.sql import SqlAlchemyStore

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"

START = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Wall clock for the store: starts at a fixed instant and only moves on advance()"""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float = 0, **kwargs) -> datetime:
        self.now += timedelta(seconds=seconds, **kwargs)
        return self.now


class MonotonicClock:
    """Monotonic clock for circuit breakers"""

    def __init__(self):
        self.value = 1000.0

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


class FakeProvider(TranscriptionProvider):
    """
    Answers inline with "text for <file>" unless outcomes were scripted for a
    file with script(). Exceptions in a script are raised.
    """

    name = "fake"

    def __init__(self):
        self.scripts: dict[str, list] = {}
        self.calls: list[str] = []
        self.latency = 0.0
        self.in_flight = 0
        self.max_in_flight = 0

    def script(self, audio_ref: str, *outcomes) -> None:
        self.scripts.setdefault(audio_ref, []).extend(outcomes)

    async def transcribe(self, audio_ref: str, options: TranscriptionOptions) -> TranscriptionResult:
        self.calls.append(audio_ref)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.latency:
                await asyncio.sleep(self.latency)
            queue = self.scripts.get(audio_ref)
            outcome = queue.pop(0) if queue else TranscriptionResult(text=f"text for {Path(audio_ref).stem}")
        finally:
            self.in_flight -= 1
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class FakeSplitter(AudioSplitter):
    def __init__(self, duration: float = 1900.0):
        self.duration = duration
        self.fail_split = False

    async def probe_duration(self, source: str) -> float:
        return self.duration

    async def split(self, source: str, specs: Sequence[SegmentSpec], output_dir: str) -> list[str]:
        if self.fail_split:
            raise RuntimeError("splitter exploded")
        directory = Path(output_dir)
        directory.mkdir(parents=True, exist_ok=True)
        paths = []
        for spec in specs:
            path = directory / f"segment_{spec.index:04d}.mp3"
            path.write_bytes(b"audio")
            paths.append(str(path))
        return paths


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def breaker_clock() -> MonotonicClock:
    return MonotonicClock()


@pytest.fixture
def store(clock) -> InMemoryStore:
    return InMemoryStore(clock=clock)


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def breaker(breaker_clock) -> CircuitBreaker:
    return CircuitBreaker(
        PROVIDER_BREAKER,
        CircuitBreakerConfig(failure_threshold=5, recovery_timeout=60.0),
        clock=breaker_clock,
    )


@pytest.fixture
def notifier() -> AsyncMock:
    mock = AsyncMock(spec=ClientWebhookNotifier)
    mock.deliver.return_value = DeliveryResult(delivered=True, status_code=200)
    return mock


@pytest.fixture
def assembler(store, notifier) -> TranscriptAssembler:
    return TranscriptAssembler(store, notifier, notify_on_failure=False)


@pytest.fixture
def sleep() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def processor(store, provider, breaker, assembler, sleep) -> SegmentQueueProcessor:
    return SegmentQueueProcessor(
        store,
        provider,
        breaker,
        assembler,
        max_concurrent=8,
        stale_after=60.0,
        dispatch_delay=2.0,
        max_attempts=3,
        call_timeout=5.0,
        sleep=sleep,
    )


@pytest.fixture
def create_task(store):
    """Create a task with n contiguous segments, all pending"""

    async def _create(
        n: int = 3,
        segment_seconds: float = 900.0,
        webhook_url: str | None = "https://client.example.com/hook",
        file_dir: str = "/audio",
    ):
        task = TaskRecord(original_filename="meeting.mp3", client_webhook_url=webhook_url)
        segments = [
            SegmentRecord(
                task_id=task.id,
                start_time=i * segment_seconds,
                end_time=(i + 1) * segment_seconds,
                file_path=f"{file_dir}/{task.id}/segment_{i}.mp3",
            )
            for i in range(n)
        ]
        task = await store.create_task(task, segments)
        return task, await store.list_segments(task.id)

    return _create


@pytest_asyncio.fixture
async def sql_engine():
    engine = create_async_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def sql_store(sql_engine, clock) -> SqlAlchemyStore:
    session_factory = async_sessionmaker(sql_engine, expire_on_commit=False)
    return SqlAlchemyStore(session_factory, clock=clock)


@pytest.fixture
def job_queue() -> MagicMock:
    queue = MagicMock()
    queue.enqueue_segment_processing.return_value = EnqueuedJob(
        id="job-1",
        queue="transcription",
        func_name="process_segments",
    )
    return queue


@pytest.fixture
def splitter() -> FakeSplitter:
    return FakeSplitter()


@pytest.fixture
def breaker_registry() -> CircuitBreakerRegistry:
    return init_circuit_breakers(CircuitBreakerRegistry())


@pytest_asyncio.fixture
async def client(
    store, provider, notifier, job_queue, splitter, breaker_registry, tmp_path
) -> AsyncGenerator[AsyncClient, None]:
    redis = AsyncMock()
    redis.ping.return_value = True

    async def override_get_redis():
        yield redis

    async def override_get_queue():
        yield job_queue

    app.dependency_overrides[deps.get_store] = lambda: store
    app.dependency_overrides[deps.get_provider] = lambda: provider
    app.dependency_overrides[deps.get_notifier] = lambda: notifier
    app.dependency_overrides[deps.get_splitter] = lambda: splitter
    app.dependency_overrides[deps.get_storage] = lambda: ArtifactStorage(str(tmp_path))
    app.dependency_overrides[deps.get_breaker_registry] = lambda: breaker_registry
    app.dependency_overrides[deps.get_queue] = override_get_queue
    app.dependency_overrides[get_redis] = override_get_redis

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()
