"""
Unified Rate Limiter

Outbound pacing for HTTP clients. Callers wait until a request slot is
free, which keeps bursty playlist resolution from hammering the audio node
or the catalog service. Provider-side budgets that must reject instead of
wait live in ``encore.services.provider_health``.
"""

import asyncio
import time
from collections import deque
from typing import Optional

import structlog

logger = structlog.get_logger(__name__)


class UnifiedRateLimiter:
    """
    Rate limiter with a per-second token bucket and a per-minute window.

    Either limit may be omitted.
    """

    def __init__(
        self,
        calls_per_second: Optional[float] = None,
        calls_per_minute: Optional[int] = None,
        burst_size: Optional[int] = None,
        service_name: str = "api"
    ):
        """
        Initialize rate limiter with specified limits.

        Args:
            calls_per_second: Maximum calls per second (float for sub-second intervals)
            calls_per_minute: Maximum calls per minute
            burst_size: Maximum burst size (defaults to calls_per_second * 2)
            service_name: Service name for logging
        """
        self.calls_per_second = calls_per_second
        self.calls_per_minute = calls_per_minute
        self.service_name = service_name

        if calls_per_second:
            self.burst_size = burst_size or max(int(calls_per_second * 2), 1)
            self.tokens = float(self.burst_size)
            self.last_refill = time.monotonic()
        else:
            self.burst_size = None
            self.tokens = 0.0
            self.last_refill = 0.0

        self.request_times: deque = deque()
        self.lock = asyncio.Lock()

        self.logger = logger.bind(service=f"RateLimiter-{service_name}")
        self.logger.debug(
            "Rate limiter initialized",
            calls_per_second=calls_per_second,
            calls_per_minute=calls_per_minute,
            burst_size=self.burst_size
        )

    @classmethod
    def for_lavalink(cls, calls_per_second: float = 20.0) -> "UnifiedRateLimiter":
        """Pacing for the audio node REST API."""
        return cls(calls_per_second=calls_per_second, service_name="Lavalink")

    @classmethod
    def for_spotify(cls, calls_per_second: float = 10.0) -> "UnifiedRateLimiter":
        """Pacing for the Spotify Web API."""
        return cls(calls_per_second=calls_per_second, service_name="Spotify")

    async def wait_if_needed(self) -> None:
        """
        Wait if necessary to respect rate limits.

        This method should be called before making each API request.
        """
        async with self.lock:
            current_time = time.monotonic()
            self._cleanup_old_requests(current_time)

            wait_time = 0.0
            if self.calls_per_second:
                wait_time = max(wait_time, self._check_per_second_limit(current_time))
            if self.calls_per_minute:
                wait_time = max(wait_time, self._check_per_minute_limit(current_time))

            if wait_time > 0:
                self.logger.debug(
                    "Rate limit wait required",
                    wait_time=wait_time,
                    current_requests=len(self.request_times)
                )
                await asyncio.sleep(wait_time)
                current_time = time.monotonic()
                if self.calls_per_second:
                    self._check_per_second_limit(current_time)

            self.request_times.append(current_time)
            if self.calls_per_second:
                self.tokens = max(0.0, self.tokens - 1)

    def _check_per_second_limit(self, current_time: float) -> float:
        """Refill the token bucket and return the wait for the next token."""
        time_elapsed = current_time - self.last_refill
        self.tokens = min(self.burst_size, self.tokens + time_elapsed * self.calls_per_second)
        self.last_refill = current_time

        if self.tokens >= 1:
            return 0.0
        return (1.0 - self.tokens) / self.calls_per_second

    def _check_per_minute_limit(self, current_time: float) -> float:
        """Wait until the oldest request in the last minute falls out of the window."""
        minute_ago = current_time - 60
        recent_requests = [t for t in self.request_times if t > minute_ago]

        if len(recent_requests) < self.calls_per_minute:
            return 0.0
        return max(0.0, 60 - (current_time - min(recent_requests)))

    def _cleanup_old_requests(self, current_time: float) -> None:
        cutoff_time = current_time - 60
        while self.request_times and self.request_times[0] < cutoff_time:
            self.request_times.popleft()

    def get_current_usage(self) -> dict:
        """
        Get current rate limit usage statistics.

        Returns:
            Dictionary with current usage information
        """
        minute_ago = time.monotonic() - 60
        usage = {
            "service": self.service_name,
            "requests_last_minute": len([t for t in self.request_times if t > minute_ago]),
        }
        if self.calls_per_second:
            usage["tokens_available"] = round(self.tokens, 2)
            usage["calls_per_second_limit"] = self.calls_per_second
        if self.calls_per_minute:
            usage["calls_per_minute_limit"] = self.calls_per_minute
        return usage

    def reset(self) -> None:
        """Reset rate limiter state (useful for testing)."""
        self.request_times.clear()
        if self.calls_per_second:
            self.tokens = float(self.burst_size)
            self.last_refill = time.monotonic()
        self.logger.debug("Rate limiter reset")
