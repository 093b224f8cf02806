"""
Tests for the Backend Search Gateway

The audio node client is mocked; the gateway's job is timeouts, error
mapping and bounded concurrency.
"""

import asyncio

import pytest
from unittest.mock import AsyncMock, Mock

from encore.api.base_client import APIRequestError
from encore.api.lavalink_client import LoadResult
from encore.exceptions import AllBackendsFailed, BackendUnavailable, ResolutionTimeout
from encore.models.track_models import Backend
from encore.services.search_gateway import BackendSearchGateway
from tests.conftest import make_candidate


class TestBackendSearchGateway:
    """Test suite for BackendSearchGateway"""

    @pytest.fixture
    def mock_client(self):
        client = Mock()
        client.search = AsyncMock()
        client.load_tracks = AsyncMock()
        return client

    @pytest.fixture
    def gateway(self, mock_client):
        return BackendSearchGateway(mock_client, default_backend=Backend.YOUTUBE, timeout=0.5)

    @pytest.mark.asyncio
    async def test_search_uses_default_backend(self, gateway, mock_client):
        hits = [make_candidate("Song", backend=Backend.YOUTUBE)]
        mock_client.search.return_value = LoadResult("search", hits)

        results = await gateway.search("artist song")

        assert results == hits
        mock_client.search.assert_awaited_once_with("artist song", Backend.YOUTUBE)

    @pytest.mark.asyncio
    async def test_empty_search_is_not_an_error(self, gateway, mock_client):
        mock_client.search.return_value = LoadResult("empty")

        assert await gateway.search("nothing", Backend.SOUNDCLOUD) == []

    @pytest.mark.asyncio
    async def test_search_error_raises_backend_unavailable(self, gateway, mock_client):
        mock_client.search.return_value = LoadResult("error", error="blocked")

        with pytest.raises(BackendUnavailable) as exc_info:
            await gateway.search("song", Backend.YOUTUBE)

        assert exc_info.value.backend == "youtube"

    @pytest.mark.asyncio
    async def test_transport_error_raises_backend_unavailable(self, gateway, mock_client):
        mock_client.search.side_effect = APIRequestError("Lavalink", "connection refused")

        with pytest.raises(BackendUnavailable):
            await gateway.search("song")

    @pytest.mark.asyncio
    async def test_timeout(self, gateway, mock_client):
        async def slow(*args):
            await asyncio.sleep(5)

        mock_client.search.side_effect = slow

        with pytest.raises(ResolutionTimeout):
            await gateway.search("song")

    @pytest.mark.asyncio
    async def test_search_any_returns_first_non_empty(self, gateway, mock_client):
        hits = [make_candidate("Song")]
        mock_client.search.side_effect = [
            LoadResult("error", error="down"),
            LoadResult("search", hits),
        ]

        results = await gateway.search_any("song", [Backend.YOUTUBE, Backend.SOUNDCLOUD])

        assert results == hits

    @pytest.mark.asyncio
    async def test_search_any_all_failed(self, gateway, mock_client):
        mock_client.search.return_value = LoadResult("error", error="down")

        with pytest.raises(AllBackendsFailed) as exc_info:
            await gateway.search_any("song", [Backend.YOUTUBE, Backend.SOUNDCLOUD])

        assert exc_info.value.backends == ["youtube", "soundcloud"]

    @pytest.mark.asyncio
    async def test_search_any_empty_answers(self, gateway, mock_client):
        mock_client.search.side_effect = [
            LoadResult("error", error="down"),
            LoadResult("empty"),
        ]

        assert await gateway.search_any("song", [Backend.YOUTUBE, Backend.SOUNDCLOUD]) == []

    @pytest.mark.asyncio
    async def test_load_returns_first_track(self, gateway, mock_client):
        track = make_candidate("Direct")
        mock_client.load_tracks.return_value = LoadResult("track", [track])

        assert await gateway.load("https://example.com/a.mp3") == track

    @pytest.mark.asyncio
    async def test_load_error_returns_none(self, gateway, mock_client):
        mock_client.load_tracks.return_value = LoadResult("error", error="unsupported")

        assert await gateway.load("https://example.com/a") is None

    @pytest.mark.asyncio
    async def test_load_many_skips_failures_and_keeps_order(self, gateway, mock_client):
        first = make_candidate("First")
        third = make_candidate("Third")

        async def load(uri):
            if uri == "u2":
                raise APIRequestError("Lavalink", "boom")
            if uri == "u4":
                return LoadResult("empty")
            return LoadResult("track", [first if uri == "u1" else third])

        mock_client.load_tracks.side_effect = load

        results = await gateway.load_many(["u1", "u2", "u3", "u4"])

        assert results == [first, third]

    @pytest.mark.asyncio
    async def test_load_many_bounds_concurrency(self, mock_client):
        gateway = BackendSearchGateway(mock_client, max_concurrent_loads=2)
        active = 0
        peak = 0

        async def load(uri):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return LoadResult("track", [make_candidate(uri)])

        mock_client.load_tracks.side_effect = load

        results = await gateway.load_many([f"u{i}" for i in range(6)])

        assert len(results) == 6
        assert peak == 2
