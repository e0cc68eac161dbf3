"""Tests for the per-provider circuit breaker."""

import asyncio

import pytest

from quiz_generation.circuit_breaker import (
    CircuitBreaker,
    CircuitConfig,
    CircuitState,
    all_circuit_stats,
    get_circuit_breaker,
    reset_all_circuits,
)
from quiz_generation.errors import CircuitOpenError


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


async def _ok():
    return "ok"


async def _fail():
    raise RuntimeError("provider down")


def run_call(breaker, fn):
    return asyncio.run(breaker.call(fn))


def fail_times(breaker, n):
    for _ in range(n):
        with pytest.raises(RuntimeError):
            run_call(breaker, _fail)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def breaker(clock):
    config = CircuitConfig(failure_threshold=4, success_threshold=2, reset_timeout=30.0, volume_threshold=3)
    return CircuitBreaker("test", config, clock)


class TestCircuitBreaker:
    """Tests for CircuitBreaker state transitions."""

    def test_starts_closed_and_counts(self, breaker):
        assert breaker.state is CircuitState.CLOSED
        run_call(breaker, _ok)
        run_call(breaker, _ok)
        stats = breaker.stats()
        assert (stats.state, stats.successes, stats.failures, stats.total_requests) == (CircuitState.CLOSED, 2, 0, 2)

    def test_needs_volume_before_tripping(self, breaker):
        fail_times(breaker, 2)
        assert breaker.state is CircuitState.CLOSED

    def test_opens_at_half_the_failure_threshold(self, breaker):
        fail_times(breaker, 2)
        fail_times(breaker, 1)
        assert breaker.state is CircuitState.OPEN

    def test_open_fails_fast(self, breaker, clock):
        breaker.force_open()
        calls = []

        async def tracked():
            calls.append(1)
            return "ran"

        clock.now += 10
        with pytest.raises(CircuitOpenError) as excinfo:
            run_call(breaker, tracked)
        assert calls == []
        assert excinfo.value.provider == "test"
        assert excinfo.value.retry_after == pytest.approx(20.0)

    def test_half_open_after_timeout_then_closes(self, breaker, clock):
        breaker.force_open()
        clock.now += 30
        assert breaker.state is CircuitState.HALF_OPEN
        run_call(breaker, _ok)
        assert breaker.state is CircuitState.HALF_OPEN
        run_call(breaker, _ok)
        assert breaker.state is CircuitState.CLOSED
        assert breaker.stats().total_requests == 0

    def test_failure_in_half_open_reopens(self, breaker, clock):
        breaker.force_open()
        clock.now += 31
        fail_times(breaker, 1)
        assert breaker.state is CircuitState.OPEN

    def test_force_close(self, breaker):
        breaker.force_open()
        breaker.force_close()
        assert breaker.state is CircuitState.CLOSED
        assert run_call(breaker, _ok) == "ok"


class TestCircuitRegistry:
    """Tests for the process-wide breaker registry."""

    def test_same_breaker_per_provider(self):
        assert get_circuit_breaker("openai") is get_circuit_breaker("openai")

    def test_provider_specific_config(self):
        gemini = get_circuit_breaker("gemini")
        assert gemini.config.reset_timeout == 30.0
        assert gemini.config.success_threshold == 2
        assert get_circuit_breaker("some-other").config.volume_threshold == 10

    def test_stats_include_unused_known_providers(self):
        stats = all_circuit_stats()
        for name in ("gemini", "openai", "anthropic"):
            assert name in stats

    def test_reset_all(self):
        breaker = get_circuit_breaker("test-reset")
        breaker.force_open()
        reset_all_circuits()
        assert breaker.state is CircuitState.CLOSED
