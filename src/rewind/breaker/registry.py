"""Per-backend circuit breakers with lazy OPEN -> HALF_OPEN recovery."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Mapping

from rewind.extraction.models import ExtractionMethod

from .models import BreakerConfig, BreakerSnapshot, CircuitState

logger = logging.getLogger(__name__)

# The premium backend tolerates more failures and recovers more slowly.
DEFAULT_BREAKER_CONFIGS: dict[ExtractionMethod, BreakerConfig] = {
    ExtractionMethod.llm: BreakerConfig(
        failure_threshold=5,
        recovery_timeout_ms=60_000,
        monitoring_period_ms=300_000,
    ),
    ExtractionMethod.ner: BreakerConfig(
        failure_threshold=3,
        recovery_timeout_ms=30_000,
        monitoring_period_ms=180_000,
    ),
}


def _wall_clock_ms() -> int:
    return int(time.time() * 1000)


class CircuitBreaker:
    """
    Three-state breaker for one backend.

    CLOSED counts consecutive failures inside the monitoring period and opens at
    the threshold. OPEN blocks until the recovery timeout has elapsed since the
    last failure; the next availability check moves it to HALF_OPEN. HALF_OPEN
    lets trial calls through: a success closes it, a failure that reaches the
    threshold again reopens it.
    """

    def __init__(
        self,
        name: str,
        config: BreakerConfig,
        clock: Callable[[], int] = _wall_clock_ms,
    ) -> None:
        self.name = name
        self.config = config
        self._clock = clock
        self._lock = threading.Lock()
        self._state = CircuitState.closed
        self._failure_count = 0
        self._last_failure_time_ms = 0

    @property
    def state(self) -> CircuitState:
        with self._lock:
            return self._state

    def is_available(self) -> bool:
        """Return whether a call may go through; may transition OPEN -> HALF_OPEN."""
        with self._lock:
            if self._state is not CircuitState.open:
                return True

            elapsed = self._clock() - self._last_failure_time_ms
            if elapsed >= self.config.recovery_timeout_ms:
                self._state = CircuitState.half_open
                logger.info("Circuit breaker for %s moved to HALF_OPEN", self.name)
                return True
            return False

    def record_success(self) -> None:
        with self._lock:
            if self._state is CircuitState.half_open:
                logger.info("Circuit breaker for %s CLOSED after successful recovery", self.name)
            self._state = CircuitState.closed
            self._failure_count = 0

    def record_failure(self) -> None:
        with self._lock:
            now = self._clock()
            streak_expired = (
                self._state is CircuitState.closed
                and self._failure_count > 0
                and now - self._last_failure_time_ms > self.config.monitoring_period_ms
            )
            self._failure_count = 1 if streak_expired else self._failure_count + 1
            self._last_failure_time_ms = now

            if self._failure_count >= self.config.failure_threshold:
                if self._state is not CircuitState.open:
                    logger.warning(
                        "Circuit breaker for %s OPENED after %d failures",
                        self.name,
                        self._failure_count,
                    )
                self._state = CircuitState.open

    def snapshot(self) -> BreakerSnapshot:
        with self._lock:
            return BreakerSnapshot(
                state=self._state,
                failure_count=self._failure_count,
                last_failure_time_ms=self._last_failure_time_ms,
                config=self.config,
            )


class CircuitBreakerRegistry:
    """Fixed map of breakers, one per remote backend. Backends without a breaker are always available."""

    def __init__(
        self,
        configs: Mapping[ExtractionMethod, BreakerConfig] | None = None,
        clock: Callable[[], int] = _wall_clock_ms,
    ) -> None:
        configs = DEFAULT_BREAKER_CONFIGS if configs is None else configs
        self._breakers: dict[ExtractionMethod, CircuitBreaker] = {
            method: CircuitBreaker(method.value, config, clock=clock)
            for method, config in configs.items()
        }

    def get(self, method: ExtractionMethod) -> CircuitBreaker | None:
        return self._breakers.get(method)

    def is_available(self, method: ExtractionMethod) -> bool:
        breaker = self._breakers.get(method)
        return True if breaker is None else breaker.is_available()

    def record_success(self, method: ExtractionMethod) -> None:
        breaker = self._breakers.get(method)
        if breaker is not None:
            breaker.record_success()

    def record_failure(self, method: ExtractionMethod) -> None:
        breaker = self._breakers.get(method)
        if breaker is not None:
            breaker.record_failure()

    def snapshot(self) -> dict[str, BreakerSnapshot]:
        """Return every breaker's current state keyed by backend name."""
        return {method.value: breaker.snapshot() for method, breaker in self._breakers.items()}
