"""Tests for the concurrency limiter and the retry helper."""

import asyncio

import pytest

from quiz_generation.errors import CircuitOpenError
from quiz_generation.limiter import (
    DEFAULT_RETRY,
    ConcurrencyLimiter,
    RetryPolicy,
    get_default_limiter,
    retry_async,
)

from conftest import ScriptedProvider, fast_policy


class TestConcurrencyLimiter:
    """Tests for ConcurrencyLimiter."""

    def test_bound_is_never_exceeded(self):
        limiter = ConcurrencyLimiter(3)

        async def work():
            async with limiter:
                await asyncio.sleep(0.01)

        async def main():
            await asyncio.gather(*[work() for _ in range(12)])

        asyncio.run(main())
        assert limiter.peak == 3
        assert limiter.in_flight == 0

    def test_run_helper(self):
        limiter = ConcurrencyLimiter(1)

        async def value():
            assert limiter.in_flight == 1
            return 42

        assert asyncio.run(limiter.run(value)) == 42
        assert limiter.in_flight == 0

    def test_slot_released_on_error(self):
        limiter = ConcurrencyLimiter(1)

        async def boom():
            raise ValueError("x")

        with pytest.raises(ValueError):
            asyncio.run(limiter.run(boom))
        assert limiter.in_flight == 0

    def test_invalid_limit(self):
        with pytest.raises(ValueError):
            ConcurrencyLimiter(0)

    def test_default_limiter_is_shared(self):
        assert get_default_limiter() is get_default_limiter()
        assert get_default_limiter().limit == 5

    def test_provider_calls_share_the_bound(self):
        limiter = ConcurrencyLimiter(2)
        providers = [
            ScriptedProvider(name, limiter, answers='{"answers": ["A"]}')
            for name in ("p1", "p2", "p3", "p4")
        ]

        async def main():
            return await asyncio.gather(*[p.answer_multiple_choice("Q") for p in providers])

        assert asyncio.run(main()) == [["A"]] * 4
        assert limiter.peak <= 2

    @staticmethod
    def _burst(limiter, count):
        async def work():
            async with limiter:
                await asyncio.sleep(0.01)
            return True

        async def main():
            return await asyncio.gather(*[work() for _ in range(count)])

        return asyncio.run(main())

    def test_survives_successive_event_loops(self):
        limiter = ConcurrencyLimiter(2)
        assert self._burst(limiter, 5) == [True] * 5
        assert self._burst(limiter, 5) == [True] * 5
        assert limiter.peak == 2
        assert limiter.in_flight == 0

    def test_default_limiter_across_event_loops(self):
        limiter = get_default_limiter()
        count = limiter.limit + 3
        assert self._burst(limiter, count) == [True] * count
        assert self._burst(limiter, count) == [True] * count
        assert limiter.peak <= limiter.limit
        assert limiter.in_flight == 0


class TestRetryAsync:
    """Tests for retry_async."""

    def test_default_policy(self):
        assert (DEFAULT_RETRY.attempts, DEFAULT_RETRY.base_delay, DEFAULT_RETRY.factor, DEFAULT_RETRY.max_delay) \
            == (3, 1.0, 2.0, 10.0)

    def test_succeeds_after_failures(self):
        calls = []

        async def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise RuntimeError("transient")
            return "ok"

        assert asyncio.run(retry_async(flaky, fast_policy(3), label="flaky")) == "ok"
        assert len(calls) == 3

    def test_attempt_ceiling_and_last_error(self):
        calls = []

        async def always_fails():
            calls.append(1)
            raise RuntimeError(f"failure {len(calls)}")

        with pytest.raises(RuntimeError, match="failure 2"):
            asyncio.run(retry_async(always_fails, fast_policy(2)))
        assert len(calls) == 2

    def test_circuit_open_is_not_retried(self):
        calls = []

        async def short_circuited():
            calls.append(1)
            raise CircuitOpenError("gemini", 12.5)

        with pytest.raises(CircuitOpenError, match="Retry after 13s"):
            asyncio.run(retry_async(short_circuited, fast_policy(3)))
        assert len(calls) == 1

    def test_policy_validation(self):
        with pytest.raises(ValueError):
            RetryPolicy(attempts=0)
