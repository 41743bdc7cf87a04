"""
Circuit Breaker Tests
"""

import asyncio

import pytest

from transcriber.core.errors import (
    CircuitOpenError,
    NotFoundError,
    ProviderInvalidInputError,
    ProviderUnavailableError,
)
from transcriber.services.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerRegistry,
    CircuitState,
    init_circuit_breakers,
)


async def ok():
    return "ok"


async def boom():
    raise ProviderUnavailableError("provider", "down")


async def trip(breaker: CircuitBreaker, times: int = 5) -> None:
    for _ in range(times):
        with pytest.raises(ProviderUnavailableError):
            await breaker.call(boom)


@pytest.mark.asyncio
async def test_opens_after_threshold_and_rejects_without_calling(breaker):
    await trip(breaker, 5)
    assert breaker.state == CircuitState.OPEN

    called = False

    async def tracked():
        nonlocal called
        called = True

    with pytest.raises(CircuitOpenError) as exc_info:
        await breaker.call(tracked)

    assert called is False
    assert exc_info.value.service == "provider"
    assert breaker.stats()["rejected_count"] == 1


@pytest.mark.asyncio
async def test_success_resets_consecutive_failures(breaker):
    await trip(breaker, 4)
    assert await breaker.call(ok) == "ok"
    await trip(breaker, 4)

    assert breaker.state == CircuitState.CLOSED
    assert breaker.consecutive_failures == 4
    assert breaker.failure_count == 8


@pytest.mark.asyncio
async def test_half_open_trial_success_closes(breaker, breaker_clock):
    await trip(breaker)
    breaker_clock.advance(59)
    with pytest.raises(CircuitOpenError):
        await breaker.call(ok)

    breaker_clock.advance(1)
    assert await breaker.call(ok) == "ok"
    assert breaker.state == CircuitState.CLOSED
    assert breaker.consecutive_failures == 0


@pytest.mark.asyncio
async def test_half_open_trial_failure_reopens_and_restarts_cooldown(breaker, breaker_clock):
    await trip(breaker)
    breaker_clock.advance(60)

    with pytest.raises(ProviderUnavailableError):
        await breaker.call(boom)
    assert breaker.state == CircuitState.OPEN

    breaker_clock.advance(30)
    with pytest.raises(CircuitOpenError):
        await breaker.call(ok)

    breaker_clock.advance(30)
    assert await breaker.call(ok) == "ok"
    assert breaker.state == CircuitState.CLOSED


@pytest.mark.asyncio
async def test_half_open_admits_exactly_one_concurrent_trial(breaker, breaker_clock):
    await trip(breaker)
    breaker_clock.advance(60)

    release = asyncio.Event()

    async def slow():
        await release.wait()
        return "trial"

    trial = asyncio.create_task(breaker.call(slow))
    await asyncio.sleep(0)
    assert breaker.state == CircuitState.HALF_OPEN

    with pytest.raises(CircuitOpenError):
        await breaker.call(ok)

    release.set()
    assert await trial == "trial"
    assert breaker.state == CircuitState.CLOSED


@pytest.mark.asyncio
async def test_excluded_exceptions_do_not_count(breaker):
    async def bad_input():
        raise ProviderInvalidInputError("provider", "unsupported codec")

    for _ in range(10):
        with pytest.raises(ProviderInvalidInputError):
            await breaker.call(bad_input)

    assert breaker.state == CircuitState.CLOSED
    assert breaker.failure_count == 0
    assert breaker.total_requests == 10


@pytest.mark.asyncio
async def test_force_reset_closes_and_zeroes_counters(breaker):
    await trip(breaker)
    breaker.force_reset()

    stats = breaker.stats()
    assert stats["state"] == "closed"
    assert stats["failure_count"] == 0
    assert stats["consecutive_failures"] == 0
    assert stats["rejected_count"] == 0
    assert stats["retry_after_seconds"] is None
    assert await breaker.call(ok) == "ok"


@pytest.mark.asyncio
async def test_stats_report_retry_after_while_open(breaker, breaker_clock):
    await trip(breaker)
    breaker_clock.advance(20)

    stats = breaker.stats()
    assert stats["state"] == "open"
    assert stats["healthy"] is False
    assert stats["retry_after_seconds"] == pytest.approx(40.0)
    assert stats["last_failure_at"] is not None


def test_registry_refuses_duplicates_and_never_creates():
    registry = CircuitBreakerRegistry()
    registry.register(CircuitBreaker("provider"))

    with pytest.raises(ValueError):
        registry.register(CircuitBreaker("provider"))
    with pytest.raises(NotFoundError):
        registry.get("storage")
    assert registry.names() == ["provider"]


@pytest.mark.asyncio
async def test_registry_health_covers_only_critical_breakers(breaker):
    registry = CircuitBreakerRegistry()
    registry.register(breaker)
    registry.register(CircuitBreaker("database"))

    await trip(breaker)

    assert registry.health(["database"]) is True
    assert registry.health(["provider", "database"]) is False
    assert registry.health() is False
    assert set(registry.all_stats()) == {"provider", "database"}


def test_init_circuit_breakers_is_idempotent():
    registry = CircuitBreakerRegistry()
    init_circuit_breakers(registry)
    init_circuit_breakers(registry)

    assert sorted(registry.names()) == ["database", "provider"]
