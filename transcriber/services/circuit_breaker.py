"""
Circuit Breaker

Guards calls to an external dependency. After too many consecutive failures
the breaker opens and rejects calls without making them; once the recovery
timeout has passed a single trial call decides whether it closes again.

Breakers live in a process-wide registry that is filled once at startup.
The provider breaker wraps every transcription call. The database breaker
wraps only the health-check ping; store calls do not go through it, so it
tracks reachability as seen by /health rather than every query.
"""

import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, Optional, TypeVar

from transcriber.core.config import settings
from transcriber.core.errors import (
    CircuitOpenError,
    NotFoundError,
    ValidationError,
)
from transcriber.core.logging import get_logger
from transcriber.core.time import utcnow

logger = get_logger(__name__)

T = TypeVar("T")


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreakerConfig:
    failure_threshold: int = 5
    recovery_timeout: float = 60.0
    # Exceptions raised by the caller's own mistakes; never counted as failures
    excluded_exceptions: tuple[type[BaseException], ...] = field(default=(ValidationError,))


class CircuitBreaker:
    def __init__(
        self,
        name: str,
        config: Optional[CircuitBreakerConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self._clock = clock

        self.state = CircuitState.CLOSED
        self.consecutive_failures = 0
        self.failure_count = 0
        self.success_count = 0
        self.total_requests = 0
        self.rejected_count = 0
        self.last_failure_at: Optional[datetime] = None
        self._opened_at: Optional[float] = None
        self._trial_in_flight = False

    async def call(self, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """
        Run func through the breaker.

        Raises CircuitOpenError without calling func while open, or while a
        half-open trial is already running. Any exception from func is
        re-raised unchanged after being recorded.
        """
        is_trial = self._admit()
        self.total_requests += 1
        try:
            result = await func(*args, **kwargs)
        except self.config.excluded_exceptions:
            if is_trial:
                self._trial_in_flight = False
            raise
        except Exception as e:
            self._on_failure(e, is_trial)
            raise
        except BaseException:
            # Cancellation says nothing about the dependency
            if is_trial:
                self._trial_in_flight = False
            raise
        self._on_success(is_trial)
        return result

    def _admit(self) -> bool:
        if self.state == CircuitState.OPEN:
            if self._clock() - self._opened_at >= self.config.recovery_timeout:
                self._transition(CircuitState.HALF_OPEN)
            else:
                self._reject()

        if self.state == CircuitState.HALF_OPEN:
            if self._trial_in_flight:
                self._reject()
            self._trial_in_flight = True
            return True
        return False

    def _reject(self) -> None:
        self.rejected_count += 1
        retry_after = self.retry_after
        logger.warning(f"Circuit breaker '{self.name}' rejected a call ({self.state.value})")
        raise CircuitOpenError(self.name, retry_after=retry_after)

    def _on_success(self, is_trial: bool) -> None:
        self.success_count += 1
        self.consecutive_failures = 0
        if is_trial:
            self._trial_in_flight = False
            self._transition(CircuitState.CLOSED)

    def _on_failure(self, error: Exception, is_trial: bool) -> None:
        self.failure_count += 1
        self.consecutive_failures += 1
        self.last_failure_at = utcnow()
        logger.warning(
            f"Circuit breaker '{self.name}' recorded failure "
            f"{self.consecutive_failures}/{self.config.failure_threshold}: {error}"
        )
        if is_trial:
            self._trial_in_flight = False
            self._open()
        elif (
            self.state == CircuitState.CLOSED
            and self.consecutive_failures >= self.config.failure_threshold
        ):
            self._open()

    def _open(self) -> None:
        self._opened_at = self._clock()
        self._transition(CircuitState.OPEN)

    def _transition(self, state: CircuitState) -> None:
        if state == self.state:
            return
        logger.info(f"Circuit breaker '{self.name}': {self.state.value} -> {state.value}")
        self.state = state
        if state == CircuitState.CLOSED:
            self._opened_at = None

    @property
    def retry_after(self) -> Optional[float]:
        """Seconds until the next trial is allowed, while open"""
        if self.state != CircuitState.OPEN or self._opened_at is None:
            return None
        return max(0.0, self.config.recovery_timeout - (self._clock() - self._opened_at))

    def is_healthy(self) -> bool:
        return self.state == CircuitState.CLOSED

    def stats(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "state": self.state.value,
            "healthy": self.is_healthy(),
            "failure_count": self.failure_count,
            "consecutive_failures": self.consecutive_failures,
            "success_count": self.success_count,
            "total_requests": self.total_requests,
            "rejected_count": self.rejected_count,
            "last_failure_at": self.last_failure_at,
            "retry_after_seconds": self.retry_after,
        }

    def force_reset(self) -> None:
        logger.info(f"Circuit breaker '{self.name}' force reset")
        self.state = CircuitState.CLOSED
        self.consecutive_failures = 0
        self.failure_count = 0
        self.success_count = 0
        self.total_requests = 0
        self.rejected_count = 0
        self.last_failure_at = None
        self._opened_at = None
        self._trial_in_flight = False


class CircuitBreakerRegistry:
    def __init__(self):
        self._breakers: dict[str, CircuitBreaker] = {}

    def register(self, breaker: CircuitBreaker) -> CircuitBreaker:
        if breaker.name in self._breakers:
            raise ValueError(f"Circuit breaker '{breaker.name}' is already registered")
        self._breakers[breaker.name] = breaker
        logger.info(f"Registered circuit breaker '{breaker.name}'")
        return breaker

    def get(self, name: str) -> CircuitBreaker:
        try:
            return self._breakers[name]
        except KeyError:
            raise NotFoundError("Circuit breaker", name) from None

    def __contains__(self, name: str) -> bool:
        return name in self._breakers

    def names(self) -> list[str]:
        return list(self._breakers)

    def all_stats(self) -> dict[str, dict[str, Any]]:
        return {name: breaker.stats() for name, breaker in self._breakers.items()}

    def health(self, critical: Optional[Iterable[str]] = None) -> bool:
        """
        True when every critical breaker is healthy.
        Names without a registered breaker are ignored.
        """
        names = self._breakers.keys() if critical is None else critical
        return all(
            self._breakers[name].is_healthy()
            for name in names
            if name in self._breakers
        )


PROVIDER_BREAKER = "provider"
DATABASE_BREAKER = "database"

registry = CircuitBreakerRegistry()


def init_circuit_breakers(target: Optional[CircuitBreakerRegistry] = None) -> CircuitBreakerRegistry:
    """Register the process's breakers. Safe to call more than once."""
    if target is None:
        target = registry
    config = CircuitBreakerConfig(
        failure_threshold=settings.breaker_failure_threshold,
        recovery_timeout=settings.breaker_recovery_seconds,
    )
    for name in (PROVIDER_BREAKER, DATABASE_BREAKER):
        if name not in target:
            target.register(CircuitBreaker(name, config))
    return target
