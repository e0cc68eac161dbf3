"""
Per-provider circuit breaker.

  CLOSED     calls pass through; failures are counted
  OPEN       calls fail fast with CircuitOpenError until the reset timeout
  HALF_OPEN  trial calls; enough consecutive successes close the circuit,
             any failure re-opens it
"""

import logging
import time
from enum import Enum
from typing import Awaitable, Callable, Dict, Optional, TypeVar

from pydantic import BaseModel

from quiz_generation.errors import CircuitOpenError

log = logging.getLogger(__name__)

T = TypeVar("T")

KNOWN_PROVIDERS = ("gemini", "openai", "anthropic")


class CircuitState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


class CircuitConfig(BaseModel):
    failure_threshold: int = 5
    success_threshold: int = 3
    reset_timeout: float = 60.0       # seconds before an open circuit allows a trial call
    volume_threshold: int = 10        # requests seen before the circuit may trip


DEFAULT_CIRCUIT_CONFIG = CircuitConfig()

PROVIDER_CIRCUIT_CONFIGS: Dict[str, CircuitConfig] = {
    # primary generator, recovers fast
    "gemini": CircuitConfig(failure_threshold=5, success_threshold=2, reset_timeout=30.0, volume_threshold=5),
    "openai": DEFAULT_CIRCUIT_CONFIG,
    "anthropic": DEFAULT_CIRCUIT_CONFIG,
}


class CircuitStats(BaseModel):
    state: CircuitState
    failures: int = 0
    successes: int = 0
    total_requests: int = 0


class CircuitBreaker:

    def __init__(
        self,
        name: str,
        config: CircuitConfig = DEFAULT_CIRCUIT_CONFIG,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.config = config
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._opened_at = 0.0
        self._reset_counters()

    def _reset_counters(self) -> None:
        self._failures = 0
        self._successes = 0
        self._total_requests = 0
        self._consecutive_successes = 0

    # ── State ──────────────────────────────────────────────────────────────────

    @property
    def state(self) -> CircuitState:
        if self._state is CircuitState.OPEN and self._timeout_elapsed():
            self._transition(CircuitState.HALF_OPEN)
        return self._state

    def _timeout_elapsed(self) -> bool:
        return self._clock() - self._opened_at >= self.config.reset_timeout

    def retry_after(self) -> float:
        """Seconds until an open circuit lets a trial call through."""
        if self._state is not CircuitState.OPEN:
            return 0.0
        return max(0.0, self.config.reset_timeout - (self._clock() - self._opened_at))

    def _transition(self, new_state: CircuitState) -> None:
        old_state = self._state
        self._state = new_state
        log.warning(
            f"[Circuit] {self.name}: {old_state.value} -> {new_state.value} "
            f"failures={self._failures} successes={self._successes} total={self._total_requests}"
        )
        if new_state is CircuitState.OPEN:
            self._opened_at = self._clock()
        elif new_state is CircuitState.CLOSED:
            self._reset_counters()
            self._opened_at = 0.0

    # ── Execution ──────────────────────────────────────────────────────────────

    async def call(self, fn: Callable[[], Awaitable[T]]) -> T:
        if self.state is CircuitState.OPEN:
            raise CircuitOpenError(self.name, self.retry_after())

        self._total_requests += 1
        try:
            result = await fn()
        except Exception:
            self._record_failure()
            raise
        self._record_success()
        return result

    def _record_success(self) -> None:
        self._successes += 1
        self._consecutive_successes += 1
        if (
            self._state is CircuitState.HALF_OPEN
            and self._consecutive_successes >= self.config.success_threshold
        ):
            self._transition(CircuitState.CLOSED)

    def _record_failure(self) -> None:
        self._failures += 1
        self._consecutive_successes = 0

        if self._state is CircuitState.HALF_OPEN:
            self._transition(CircuitState.OPEN)
            return

        if (
            self._state is CircuitState.CLOSED
            and self._total_requests >= self.config.volume_threshold
            and self.failure_rate() >= 0.5
        ):
            self._transition(CircuitState.OPEN)

    def failure_rate(self) -> float:
        return min(1.0, self._failures / self.config.failure_threshold)

    # ── Introspection / manual control ─────────────────────────────────────────

    def stats(self) -> CircuitStats:
        return CircuitStats(
            state=self.state,
            failures=self._failures,
            successes=self._successes,
            total_requests=self._total_requests,
        )

    def force_open(self) -> None:
        self._transition(CircuitState.OPEN)

    def force_close(self) -> None:
        self._transition(CircuitState.CLOSED)


# ─── Registry ─────────────────────────────────────────────────────────────────

_breakers: Dict[str, CircuitBreaker] = {}


def get_circuit_breaker(provider: str, clock: Optional[Callable[[], float]] = None) -> CircuitBreaker:
    """Process-wide breaker for ``provider``, created on first use."""
    breaker = _breakers.get(provider)
    if breaker is None:
        config = PROVIDER_CIRCUIT_CONFIGS.get(provider, DEFAULT_CIRCUIT_CONFIG)
        breaker = CircuitBreaker(provider, config, clock or time.monotonic)
        _breakers[provider] = breaker
    return breaker


def all_circuit_stats() -> Dict[str, CircuitStats]:
    stats = {name: breaker.stats() for name, breaker in _breakers.items()}
    for provider in KNOWN_PROVIDERS:
        stats.setdefault(provider, CircuitStats(state=CircuitState.CLOSED))
    return stats


def reset_all_circuits() -> None:
    for breaker in _breakers.values():
        breaker.force_close()
    log.info("[Circuit] All circuit breakers reset")
