"""
Concurrency limiting and retry for provider calls.

One ConcurrencyLimiter is shared by every provider in the process, so the
bound on in-flight AI calls holds across concurrent pipeline runs. Each event
loop gets its own semaphore, so the limiter keeps working across successive
``asyncio.run`` calls and the bound holds per loop. Retries wrap a single
attempt at a time: the limiter slot is held only while a call is in flight,
never during backoff.
"""

import asyncio
import logging
import threading
import weakref
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel, Field
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from quiz_generation.config import AI_MAX_CONCURRENCY
from quiz_generation.errors import CircuitOpenError

log = logging.getLogger(__name__)

T = TypeVar("T")


class ConcurrencyLimiter:
    """Bounded number of simultaneous provider calls."""

    def __init__(self, limit: int = AI_MAX_CONCURRENCY):
        if limit < 1:
            raise ValueError("limit must be >= 1")
        self.limit = limit
        self._semaphores: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, asyncio.Semaphore]" = (
            weakref.WeakKeyDictionary()
        )
        self._lock = threading.Lock()
        self._in_flight = 0
        self.peak = 0

    @property
    def in_flight(self) -> int:
        return self._in_flight

    def _semaphore_for_loop(self) -> asyncio.Semaphore:
        loop = asyncio.get_running_loop()
        with self._lock:
            semaphore = self._semaphores.get(loop)
            if semaphore is None:
                semaphore = asyncio.Semaphore(self.limit)
                self._semaphores[loop] = semaphore
            return semaphore

    async def __aenter__(self) -> "ConcurrencyLimiter":
        await self._semaphore_for_loop().acquire()
        with self._lock:
            self._in_flight += 1
            self.peak = max(self.peak, self._in_flight)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        with self._lock:
            self._in_flight -= 1
        self._semaphore_for_loop().release()

    async def run(self, fn: Callable[[], Awaitable[T]]) -> T:
        async with self:
            return await fn()


_default_limiter: Optional[ConcurrencyLimiter] = None


def get_default_limiter() -> ConcurrencyLimiter:
    """Process-wide limiter shared by the default providers."""
    global _default_limiter
    if _default_limiter is None:
        _default_limiter = ConcurrencyLimiter(AI_MAX_CONCURRENCY)
    return _default_limiter


class RetryPolicy(BaseModel):
    """Capped exponential backoff: base_delay * factor**n, at most max_delay."""
    attempts: int = Field(3, ge=1)
    base_delay: float = Field(1.0, ge=0.0)
    factor: float = Field(2.0, ge=1.0)
    max_delay: float = Field(10.0, ge=0.0)

    def with_attempts(self, attempts: int) -> "RetryPolicy":
        return self.model_copy(update={"attempts": attempts})


DEFAULT_RETRY = RetryPolicy()
PRIMARY_GENERATION_RETRY = DEFAULT_RETRY.with_attempts(2)
GROUNDING_RETRY = DEFAULT_RETRY.with_attempts(2)
CONSENSUS_RETRY = DEFAULT_RETRY.with_attempts(3)
FULL_RETRY_POLICY = DEFAULT_RETRY.with_attempts(2)
PARTIAL_REGENERATION_RETRY = DEFAULT_RETRY.with_attempts(1)
SINGLE_ATTEMPT = DEFAULT_RETRY.with_attempts(1)

# Failures that should go straight to the fallback path instead of being retried
NON_RETRYABLE: Tuple[Type[BaseException], ...] = (CircuitOpenError,)


def _log_attempt(label: str, policy: RetryPolicy) -> Callable[[RetryCallState], None]:
    def before_sleep(state: RetryCallState) -> None:
        error = state.outcome.exception() if state.outcome else None
        log.warning(
            f"AI call failed - attempt {state.attempt_number}/{policy.attempts} [{label}] "
            f"retriesLeft={policy.attempts - state.attempt_number} error={error}"
        )
    return before_sleep


async def retry_async(
    fn: Callable[[], Awaitable[T]],
    policy: RetryPolicy = DEFAULT_RETRY,
    *,
    label: str = "ai-call",
) -> T:
    """
    Await ``fn()`` until it succeeds or ``policy.attempts`` is exhausted, then
    re-raise the last error.
    """
    retrying = AsyncRetrying(
        stop=stop_after_attempt(policy.attempts),
        wait=wait_exponential(
            multiplier=policy.base_delay,
            exp_base=policy.factor,
            max=policy.max_delay,
        ),
        retry=retry_if_not_exception_type(NON_RETRYABLE),
        before_sleep=_log_attempt(label, policy),
        reraise=True,
    )
    async for attempt in retrying:
        with attempt:
            return await fn()
    raise RuntimeError("unreachable")  # pragma: no cover
