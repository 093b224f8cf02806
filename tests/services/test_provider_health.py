"""
Tests for provider rate limiting and circuit breaking
"""

import pytest

from encore.services.provider_health import (
    CircuitBreaker,
    ProviderHealthRegistry,
    ProviderRateLimiter,
)


class TestProviderRateLimiter:
    """Window budget and backoff"""

    @pytest.fixture
    def limiter(self, clock):
        return ProviderRateLimiter(max_requests=3, window_seconds=60, clock=clock)

    def test_budget_exhaustion_rejects(self, limiter):
        assert [limiter.try_acquire() for _ in range(3)] == [True, True, True]
        assert limiter.try_acquire() is False
        assert limiter.is_backing_off

    def test_rejection_grows_backoff(self, limiter):
        for _ in range(3):
            limiter.try_acquire()

        limiter.try_acquire()

        assert limiter.backoff == pytest.approx(1.5)

    def test_window_rolls_over(self, limiter, clock):
        for _ in range(3):
            limiter.try_acquire()
        clock.advance(60)

        assert limiter.try_acquire() is True
        assert limiter.count == 1

    def test_backoff_blocks_even_with_budget(self, limiter, clock):
        limiter.record_rate_limited()
        assert limiter.try_acquire() is False

        clock.advance(1.5)
        assert limiter.try_acquire() is True

    def test_backoff_is_capped(self, limiter):
        for _ in range(30):
            limiter.record_rate_limited()

        assert limiter.backoff == 300.0

    def test_retry_after_is_honoured(self, limiter, clock):
        limiter.record_rate_limited(retry_after=20)

        assert limiter.backoff == 20
        clock.advance(19)
        assert limiter.is_backing_off

    def test_success_halves_backoff_with_floor(self, limiter):
        limiter.record_rate_limited()
        limiter.record_rate_limited()
        assert limiter.backoff == pytest.approx(2.25)

        limiter.record_success()
        assert limiter.backoff == pytest.approx(1.125)

        limiter.record_success()
        assert limiter.backoff == 1.0


class TestCircuitBreaker:
    """Open and auto-close"""

    @pytest.fixture
    def breaker(self, clock):
        return CircuitBreaker(failure_threshold=3, reset_timeout=300, clock=clock)

    def test_opens_at_threshold(self, breaker):
        assert breaker.record_failure() is False
        assert breaker.record_failure() is False
        assert breaker.record_failure() is True
        assert breaker.is_open()

    def test_closes_after_timeout(self, breaker, clock):
        for _ in range(3):
            breaker.record_failure()
        clock.advance(299)
        assert breaker.is_open()
        assert breaker.remaining() == pytest.approx(1)

        clock.advance(1)
        assert not breaker.is_open()
        assert breaker.failure_count == 0

    def test_success_resets_count(self, breaker):
        breaker.record_failure()
        breaker.record_failure()
        breaker.record_success()
        breaker.record_failure()

        assert not breaker.is_open()


class TestProviderHealthRegistry:
    """Registry of per-provider state"""

    @pytest.fixture
    def registry(self, clock):
        return ProviderHealthRegistry(clock=clock)

    def test_default_budgets(self, registry):
        assert registry.state("openai").limiter.max_requests == 3
        assert registry.state("gemini").limiter.max_requests == 10
        assert registry.state("other").limiter.max_requests == 5

    def test_state_is_reused(self, registry):
        assert registry.state("openai") is registry.state("openai")

    def test_rate_limit_does_not_touch_circuit(self, registry):
        for _ in range(5):
            registry.record_rate_limited("openai")

        state = registry.state("openai")
        assert state.circuit.failure_count == 0
        assert not state.circuit.is_open()
        assert state.rate_limited == 5

    def test_failures_open_circuit(self, registry):
        for _ in range(3):
            registry.record_failure("gemini", "boom")

        state = registry.state("gemini")
        assert state.circuit.is_open()
        assert state.last_error == "boom"

    def test_success_clears_error(self, registry):
        registry.record_failure("gemini", "boom")
        registry.record_success("gemini")

        assert registry.state("gemini").last_error is None
        assert registry.state("gemini").circuit.failure_count == 0

    def test_reset(self, registry):
        for _ in range(3):
            registry.record_failure("openai", "boom")

        registry.reset("openai")

        assert not registry.state("openai").circuit.is_open()
        assert registry.state("openai").failures == 0

    def test_stats(self, registry):
        registry.record_success("openai")

        stats = registry.get_stats()

        assert stats["openai"]["successes"] == 1
        assert stats["openai"]["circuit"]["state"] == "closed"
