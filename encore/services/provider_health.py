"""
Provider Health

Per-provider rate limiter and circuit breaker, owned by a registry that the
engine creates once and injects into the recommendation gateway.

All methods are synchronous. Under a single event loop a check and the
update that follows it therefore run without interleaving.
"""

import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

import structlog

logger = structlog.get_logger(__name__)

Clock = Callable[[], float]

DEFAULT_BUDGETS = {"openai": 3, "gemini": 10}


class ProviderRateLimiter:
    """
    Fixed-window request budget with an exponential backoff.

    A rejection caused by an exhausted budget grows the backoff by 1.5x
    (capped) and blocks the provider for that long; each success halves it
    (never below the initial value).
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: float = 60.0,
        initial_backoff: float = 1.0,
        max_backoff: float = 300.0,
        clock: Clock = time.monotonic
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.initial_backoff = initial_backoff
        self.max_backoff = max_backoff
        self._clock = clock

        self.count = 0
        self.window_start = clock()
        self.backoff = initial_backoff
        self.backoff_until = 0.0

    def try_acquire(self) -> bool:
        """
        Claim one request slot.

        Returns:
            True if the call may proceed; False if the provider is backing off
            or the window budget is spent
        """
        now = self._clock()

        if now < self.backoff_until:
            return False

        if now - self.window_start >= self.window_seconds:
            self.window_start = now
            self.count = 0

        if self.count >= self.max_requests:
            self._grow_backoff(now)
            return False

        self.count += 1
        return True

    def record_success(self) -> None:
        self.backoff = max(self.initial_backoff, self.backoff / 2)

    def record_rate_limited(self, retry_after: Optional[float] = None) -> None:
        """Apply an upstream rate-limit answer, honouring ``retry_after`` when larger."""
        self._grow_backoff(self._clock(), minimum=retry_after)

    def _grow_backoff(self, now: float, minimum: Optional[float] = None) -> None:
        backoff = self.backoff * 1.5
        if minimum:
            backoff = max(backoff, minimum)
        self.backoff = min(backoff, self.max_backoff)
        self.backoff_until = now + self.backoff

    @property
    def is_backing_off(self) -> bool:
        return self._clock() < self.backoff_until

    def reset(self) -> None:
        self.count = 0
        self.window_start = self._clock()
        self.backoff = self.initial_backoff
        self.backoff_until = 0.0

    def get_stats(self) -> dict:
        now = self._clock()
        return {
            "requests_in_window": self.count,
            "max_requests": self.max_requests,
            "backoff_seconds": round(self.backoff, 2),
            "backing_off_for": round(max(0.0, self.backoff_until - now), 2),
        }


class CircuitBreaker:
    """
    Consecutive-failure circuit breaker.

    After ``failure_threshold`` failures the circuit opens for
    ``reset_timeout`` seconds. The first check after that closes it again
    with a clean failure count.
    """

    def __init__(
        self,
        failure_threshold: int = 3,
        reset_timeout: float = 300.0,
        clock: Clock = time.monotonic
    ):
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self._clock = clock

        self.failure_count = 0
        self.opened = False
        self.reopen_at = 0.0

    def is_open(self) -> bool:
        if not self.opened:
            return False
        if self._clock() >= self.reopen_at:
            self.opened = False
            self.failure_count = 0
            return False
        return True

    def remaining(self) -> float:
        return max(0.0, self.reopen_at - self._clock()) if self.opened else 0.0

    def record_failure(self) -> bool:
        """Count a failure; returns True when this failure opened the circuit."""
        self.failure_count += 1
        if not self.opened and self.failure_count >= self.failure_threshold:
            self.opened = True
            self.reopen_at = self._clock() + self.reset_timeout
            return True
        return False

    def record_success(self) -> None:
        self.failure_count = 0
        self.opened = False
        self.reopen_at = 0.0

    def get_stats(self) -> dict:
        return {
            "state": "open" if self.opened else "closed",
            "failure_count": self.failure_count,
            "reopens_in": round(self.remaining(), 2),
        }


@dataclass
class ProviderHealthState:
    """Limiter and breaker for one provider."""
    provider: str
    limiter: ProviderRateLimiter
    circuit: CircuitBreaker
    successes: int = 0
    failures: int = 0
    rate_limited: int = 0
    last_error: Optional[str] = field(default=None)

    def get_stats(self) -> dict:
        return {
            "provider": self.provider,
            "successes": self.successes,
            "failures": self.failures,
            "rate_limited": self.rate_limited,
            "last_error": self.last_error,
            "circuit": self.circuit.get_stats(),
            "rate_limit": self.limiter.get_stats(),
        }


class ProviderHealthRegistry:
    """
    Long-lived owner of every provider's health state.

    States are created lazily the first time a provider name is seen, with
    the budget from ``budgets`` (or ``default_budget``).
    """

    def __init__(
        self,
        budgets: Optional[Dict[str, int]] = None,
        default_budget: int = 5,
        window_seconds: float = 60.0,
        initial_backoff: float = 1.0,
        max_backoff: float = 300.0,
        failure_threshold: int = 3,
        reset_timeout: float = 300.0,
        clock: Clock = time.monotonic
    ):
        self.budgets = dict(DEFAULT_BUDGETS if budgets is None else budgets)
        self.default_budget = default_budget
        self.window_seconds = window_seconds
        self.initial_backoff = initial_backoff
        self.max_backoff = max_backoff
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self._clock = clock
        self._states: Dict[str, ProviderHealthState] = {}
        self.logger = logger.bind(service="ProviderHealthRegistry")

    def state(self, provider: str) -> ProviderHealthState:
        if provider not in self._states:
            self._states[provider] = ProviderHealthState(
                provider=provider,
                limiter=ProviderRateLimiter(
                    max_requests=self.budgets.get(provider, self.default_budget),
                    window_seconds=self.window_seconds,
                    initial_backoff=self.initial_backoff,
                    max_backoff=self.max_backoff,
                    clock=self._clock,
                ),
                circuit=CircuitBreaker(
                    failure_threshold=self.failure_threshold,
                    reset_timeout=self.reset_timeout,
                    clock=self._clock,
                ),
            )
        return self._states[provider]

    def record_success(self, provider: str) -> None:
        state = self.state(provider)
        state.successes += 1
        state.last_error = None
        state.circuit.record_success()
        state.limiter.record_success()

    def record_failure(self, provider: str, error: str) -> None:
        state = self.state(provider)
        state.failures += 1
        state.last_error = error
        if state.circuit.record_failure():
            self.logger.warning(
                "Circuit opened",
                provider=provider,
                failures=state.circuit.failure_count,
                reset_in=self.reset_timeout
            )

    def record_rate_limited(self, provider: str, retry_after: Optional[float] = None) -> None:
        state = self.state(provider)
        state.rate_limited += 1
        state.limiter.record_rate_limited(retry_after)
        self.logger.warning(
            "Provider rate limited",
            provider=provider,
            backoff=round(state.limiter.backoff, 2)
        )

    def reset(self, provider: Optional[str] = None) -> None:
        targets = [self.state(provider)] if provider else list(self._states.values())
        for state in targets:
            state.limiter.reset()
            state.circuit.record_success()
            state.successes = state.failures = state.rate_limited = 0
            state.last_error = None

    def get_stats(self) -> Dict[str, dict]:
        return {name: state.get_stats() for name, state in self._states.items()}
