"""
Tests for outbound request pacing
"""

import pytest
from unittest.mock import AsyncMock, patch

from encore.api.lavalink_client import LavalinkClient
from encore.api.rate_limiter import UnifiedRateLimiter


class TestUnifiedRateLimiter:
    """Test suite for UnifiedRateLimiter"""

    @pytest.mark.asyncio
    async def test_burst_does_not_wait(self):
        limiter = UnifiedRateLimiter(calls_per_second=10, service_name="test")

        with patch("encore.api.rate_limiter.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            for _ in range(limiter.burst_size):
                await limiter.wait_if_needed()

        mock_sleep.assert_not_awaited()
        assert limiter.get_current_usage()["requests_last_minute"] == limiter.burst_size

    @pytest.mark.asyncio
    async def test_exhausted_bucket_waits(self):
        limiter = UnifiedRateLimiter(calls_per_second=2, burst_size=1, service_name="test")

        with patch("encore.api.rate_limiter.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            await limiter.wait_if_needed()
            await limiter.wait_if_needed()

        mock_sleep.assert_awaited_once()
        assert 0 < mock_sleep.await_args.args[0] <= 0.5

    @pytest.mark.asyncio
    async def test_per_minute_window(self):
        limiter = UnifiedRateLimiter(calls_per_minute=2, service_name="test")

        with patch("encore.api.rate_limiter.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            for _ in range(3):
                await limiter.wait_if_needed()

        mock_sleep.assert_awaited_once()
        assert mock_sleep.await_args.args[0] > 59

    @pytest.mark.asyncio
    async def test_reset(self):
        limiter = UnifiedRateLimiter.for_spotify()
        await limiter.wait_if_needed()

        limiter.reset()

        usage = limiter.get_current_usage()
        assert usage["requests_last_minute"] == 0
        assert usage["tokens_available"] == limiter.burst_size

    @pytest.mark.asyncio
    async def test_health_check_before_open(self):
        client = LavalinkClient("http://localhost:2333", "pw")

        health = await client.health_check()

        assert health["status"] == "not_initialized"
        assert health["healthy"] is False
