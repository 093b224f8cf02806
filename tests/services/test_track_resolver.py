"""
Tests for the Cross-Platform Track Resolver

The search gateway and Spotify client are mocked; the real candidate
scorer decides between candidates.
"""

import pytest
from unittest.mock import AsyncMock, Mock

from encore.api.lavalink_client import LoadResult
from encore.api.spotify_client import SpotifyClient, SpotifyCollection
from encore.exceptions import AllBackendsFailed, BackendUnavailable, NoCandidatesFound
from encore.models.track_models import (
    Backend,
    CanonicalTrackDescriptor,
    ResolutionType,
    Track,
)
from encore.services.cache_manager import CacheManager
from encore.services.candidate_scorer import CandidateScorer
from encore.services.search_gateway import BackendSearchGateway
from encore.services.track_resolver import TrackResolver, dedupe_candidates
from tests.conftest import make_candidate, timing_out_session

SPOTIFY_TRACK_URL = "https://open.spotify.com/track/4uLU6hMCjMI75M1A2tKUQC"
SPOTIFY_PLAYLIST_URL = "https://open.spotify.com/playlist/37i9dQZF1DXcBWIGoYBM5M"


def search_table(table):
    """Search side effect answering from a ``{(query, backend): hits}`` table."""
    async def search(query, backend=None):
        return table.get((query, backend), [])
    return search


def with_search_any(gateway):
    """Run the gateway's real ``search_any`` over the mocked ``search``."""
    async def search_any(query, backends):
        return await BackendSearchGateway.search_any(gateway, query, backends)
    gateway.search_any = AsyncMock(side_effect=search_any)
    return gateway


class TestTrackResolver:
    """Test suite for TrackResolver"""

    @pytest.fixture
    def canonical(self):
        return CanonicalTrackDescriptor(artist="Artist A", title="Song X", duration_ms=200000)

    @pytest.fixture
    def mock_gateway(self):
        gateway = Mock()
        gateway.default_backend = Backend.YOUTUBE
        gateway.search = AsyncMock(return_value=[])
        gateway.load_result = AsyncMock()
        gateway.load_many = AsyncMock(return_value=[])
        return with_search_any(gateway)

    @pytest.fixture
    def mock_spotify(self, canonical):
        spotify = Mock()
        spotify.get_track = AsyncMock(return_value=canonical)
        spotify.get_collection = AsyncMock()
        spotify.expand_short_link = AsyncMock()
        return spotify

    @pytest.fixture
    def resolver(self, mock_gateway, mock_spotify):
        return TrackResolver(
            mock_gateway,
            CandidateScorer(),
            spotify=mock_spotify,
            cache_manager=CacheManager()
        )

    @pytest.mark.asyncio
    async def test_free_text_returns_top_hit(self, resolver, mock_gateway, requester):
        hits = [make_candidate("First", backend=Backend.YOUTUBE), make_candidate("Second", backend=Backend.YOUTUBE)]
        mock_gateway.search.return_value = hits

        result = await resolver.resolve("artist song", requester)

        assert result.type == ResolutionType.SINGLE
        assert result.tracks[0].candidate == hits[0]
        assert result.tracks[0].requester == requester
        mock_gateway.search.assert_awaited_once_with("artist song", Backend.YOUTUBE)

    @pytest.mark.asyncio
    async def test_free_text_without_hits(self, resolver, requester):
        result = await resolver.resolve("nothing matches", requester)

        assert not result.found
        assert "nothing matches" in result.failure_reason

    @pytest.mark.asyncio
    async def test_backend_failure_is_an_empty_result(self, resolver, mock_gateway, requester):
        mock_gateway.search.side_effect = BackendUnavailable("youtube", "down")

        result = await resolver.resolve("artist song", requester)

        assert not result.found

    @pytest.mark.asyncio
    async def test_direct_url(self, resolver, mock_gateway, requester):
        track = make_candidate("Direct", backend=Backend.OTHER)
        mock_gateway.load_result.return_value = LoadResult("track", [track])

        result = await resolver.resolve("https://example.com/song.mp3", requester)

        assert result.type == ResolutionType.SINGLE
        assert result.tracks[0].candidate == track

    @pytest.mark.asyncio
    async def test_direct_playlist_url(self, resolver, mock_gateway, requester):
        tracks = [make_candidate("One"), make_candidate("Two")]
        mock_gateway.load_result.return_value = LoadResult("playlist", tracks, playlist_name="Set")

        result = await resolver.resolve("https://soundcloud.com/someone/sets/set", requester)

        assert result.type == ResolutionType.PLAYLIST
        assert result.playlist_name == "Set"
        assert [t.title for t in result.tracks] == ["One", "Two"]

    @pytest.mark.asyncio
    async def test_direct_url_load_error(self, resolver, mock_gateway, requester):
        mock_gateway.load_result.return_value = LoadResult("error", error="unsupported")

        result = await resolver.resolve("https://example.com/page", requester)

        assert not result.found
        assert result.failure_reason == "unsupported"

    @pytest.mark.asyncio
    async def test_youtube_url_falls_back_to_alternate_backend(self, resolver, mock_gateway, requester):
        info = make_candidate("Never Gonna", author="Rick", backend=Backend.YOUTUBE)
        alternate = make_candidate("Never Gonna", author="Rick", backend=Backend.SOUNDCLOUD)
        mock_gateway.load_result.side_effect = BackendUnavailable("direct", "blocked")
        mock_gateway.search.side_effect = search_table({
            ("dQw4w9WgXcQ", Backend.YOUTUBE): [info],
            ("Rick Never Gonna", Backend.SOUNDCLOUD): [alternate],
        })

        result = await resolver.resolve("https://www.youtube.com/watch?v=dQw4w9WgXcQ", requester)

        assert result.tracks[0].candidate == alternate
        assert result.tracks[0].canonical.title == "Never Gonna"

    @pytest.mark.asyncio
    async def test_youtube_url_loads_directly_when_possible(self, resolver, mock_gateway, requester):
        video = make_candidate("Video", backend=Backend.YOUTUBE)
        mock_gateway.load_result.return_value = LoadResult("track", [video])

        result = await resolver.resolve("https://youtu.be/dQw4w9WgXcQ", requester)

        assert result.tracks[0].candidate == video
        mock_gateway.search.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_spotify_track_picks_clean_candidate(self, resolver, mock_gateway, requester, canonical):
        yt_hits = [
            make_candidate("Song X (Remix)", author="Someone", backend=Backend.YOUTUBE, uri="yt-1"),
            make_candidate("Song X", author="Another", backend=Backend.YOUTUBE, uri="yt-2"),
        ]
        remix = make_candidate("Song X (Remix)", author="Some Uploader", duration_ms=198000, backend=Backend.YOUTUBE)
        clean = make_candidate("Artist A - Song X", author="Some Uploader", duration_ms=201000)

        mock_gateway.search.side_effect = search_table({
            ("Song X Artist A official audio", Backend.YOUTUBE): yt_hits,
            ("Artist A Song X", Backend.SOUNDCLOUD): [clean],
        })
        mock_gateway.load_many.return_value = [remix]

        result = await resolver.resolve(SPOTIFY_TRACK_URL, requester)

        assert result.type == ResolutionType.SINGLE
        assert result.tracks[0].candidate == clean
        assert result.tracks[0].canonical == canonical
        mock_gateway.load_many.assert_awaited_once_with(["yt-1", "yt-2"])

    @pytest.mark.asyncio
    async def test_spotify_track_degraded_search(self, resolver, mock_gateway, requester):
        fallback = make_candidate("Song X live", backend=Backend.YOUTUBE)
        mock_gateway.search.side_effect = search_table({
            ("Artist A Song X", Backend.YOUTUBE): [fallback],
        })

        result = await resolver.resolve(SPOTIFY_TRACK_URL, requester)

        assert result.tracks[0].candidate == fallback

    @pytest.mark.asyncio
    async def test_degraded_search_falls_back_to_alternate_backend(self, resolver, mock_gateway, mock_spotify, requester):
        mock_spotify.get_track.return_value = CanonicalTrackDescriptor(artist="Artist A, Artist B", title="Song X")
        fallback = make_candidate("Song X")
        mock_gateway.search.side_effect = search_table({
            ("Artist A, Artist B Song X", Backend.SOUNDCLOUD): [fallback],
        })

        result = await resolver.resolve(SPOTIFY_TRACK_URL, requester)

        assert result.tracks[0].candidate == fallback
        degraded = [call.args[1] for call in mock_gateway.search.await_args_list
                    if call.args[0] == "Artist A, Artist B Song X"]
        assert degraded == [Backend.YOUTUBE, Backend.SOUNDCLOUD]

    @pytest.mark.asyncio
    async def test_every_backend_failing(self, resolver, mock_gateway, canonical, requester):
        mock_gateway.search.side_effect = BackendUnavailable("youtube", "down")

        with pytest.raises(AllBackendsFailed):
            await resolver.resolve_descriptor(canonical, requester)

        result = await resolver.resolve(SPOTIFY_TRACK_URL, requester)

        assert not result.found
        assert "All backends failed" in result.failure_reason

    @pytest.mark.asyncio
    async def test_spotify_track_not_found(self, resolver, requester):
        result = await resolver.resolve(SPOTIFY_TRACK_URL, requester)

        assert not result.found
        assert "Artist A Song X" in result.failure_reason

    @pytest.mark.asyncio
    async def test_spotify_metadata_is_cached(self, resolver, mock_spotify, requester):
        await resolver.resolve(SPOTIFY_TRACK_URL, requester)
        await resolver.resolve(SPOTIFY_TRACK_URL, requester)

        assert mock_spotify.get_track.await_count == 1

    @pytest.mark.asyncio
    async def test_spotify_without_client(self, mock_gateway, requester):
        resolver = TrackResolver(mock_gateway, CandidateScorer())

        result = await resolver.resolve(SPOTIFY_TRACK_URL, requester)

        assert not result.found
        assert "not configured" in result.failure_reason

    @pytest.mark.asyncio
    async def test_spotify_collection_keeps_order_and_drops_failures(self, resolver, mock_spotify, requester):
        descriptors = [CanonicalTrackDescriptor(artist="A", title=f"Track {i}") for i in range(3)]
        mock_spotify.get_collection.return_value = SpotifyCollection("playlist", "Road Trip", descriptors)

        async def resolve_descriptor(descriptor, who):
            if descriptor.title == "Track 1":
                raise NoCandidatesFound(descriptor.search_query)
            return Track(make_candidate(descriptor.title), who, canonical=descriptor)

        resolver.resolve_descriptor = AsyncMock(side_effect=resolve_descriptor)

        result = await resolver.resolve(SPOTIFY_PLAYLIST_URL, requester)

        assert result.type == ResolutionType.PLAYLIST
        assert result.playlist_name == "Road Trip"
        assert [t.title for t in result.tracks] == ["Track 0", "Track 2"]
        mock_spotify.get_collection.assert_awaited_once_with("playlist", "37i9dQZF1DXcBWIGoYBM5M")

    @pytest.mark.asyncio
    async def test_spotify_collection_is_capped(self, mock_gateway, mock_spotify, requester):
        resolver = TrackResolver(mock_gateway, CandidateScorer(), spotify=mock_spotify, playlist_track_cap=2)
        descriptors = [CanonicalTrackDescriptor(artist="A", title=f"Track {i}") for i in range(5)]
        mock_spotify.get_collection.return_value = SpotifyCollection("album", "Long", descriptors)
        resolver.resolve_descriptor = AsyncMock(
            side_effect=lambda d, who: Track(make_candidate(d.title), who, canonical=d)
        )

        result = await resolver.resolve(SPOTIFY_PLAYLIST_URL, requester)

        assert len(result.tracks) == 2
        assert resolver.resolve_descriptor.await_count == 2

    @pytest.mark.asyncio
    async def test_empty_collection(self, resolver, mock_spotify, requester):
        mock_spotify.get_collection.return_value = SpotifyCollection("playlist", "Empty", [])

        result = await resolver.resolve(SPOTIFY_PLAYLIST_URL, requester)

        assert not result.found

    @pytest.mark.asyncio
    async def test_short_link_is_expanded(self, resolver, mock_spotify, mock_gateway, requester):
        mock_spotify.expand_short_link.return_value = SPOTIFY_TRACK_URL
        hit = make_candidate("Song X", author="Artist A")
        mock_gateway.search.side_effect = search_table({("Artist A Song X", Backend.SOUNDCLOUD): [hit]})

        result = await resolver.resolve("https://spotify.link/AbCdEf123", requester)

        assert result.tracks[0].candidate == hit
        mock_spotify.get_track.assert_awaited_once_with("4uLU6hMCjMI75M1A2tKUQC")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("query", [SPOTIFY_TRACK_URL, "https://spotify.link/AbCdEf123"])
    async def test_spotify_timeout_is_an_empty_result(self, mock_gateway, requester, query):
        spotify = SpotifyClient("client-id", "client-secret")
        spotify.session = timing_out_session()
        resolver = TrackResolver(mock_gateway, CandidateScorer(), spotify=spotify)

        result = await resolver.resolve(query, requester)

        assert not result.found
        assert "timed out" in result.failure_reason
        mock_gateway.search.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_short_link_to_somewhere_else(self, resolver, mock_spotify, requester):
        mock_spotify.expand_short_link.return_value = "https://spotify.link/AbCdEf123"

        result = await resolver.resolve("https://spotify.link/AbCdEf123", requester)

        assert not result.found


class TestCollectCandidates:
    """Candidate discovery order"""

    @pytest.fixture
    def mock_gateway(self):
        gateway = Mock()
        gateway.default_backend = Backend.YOUTUBE
        gateway.search = AsyncMock(return_value=[])
        gateway.load_many = AsyncMock(return_value=[])
        return gateway

    @pytest.mark.asyncio
    async def test_alternate_backend_skipped_with_enough_candidates(self, mock_gateway):
        resolver = TrackResolver(mock_gateway, CandidateScorer())
        descriptor = CanonicalTrackDescriptor(artist="A", title="Song")
        hits = [make_candidate(f"Song {i}", backend=Backend.YOUTUBE) for i in range(3)]
        mock_gateway.search.return_value = hits
        mock_gateway.load_many.return_value = hits

        candidates = await resolver.collect_candidates(descriptor)

        assert candidates == hits
        backends = [call.args[1] for call in mock_gateway.search.await_args_list]
        assert Backend.SOUNDCLOUD not in backends

    @pytest.mark.asyncio
    async def test_second_artist_used_in_discovery_query(self, mock_gateway):
        resolver = TrackResolver(mock_gateway, CandidateScorer())
        descriptor = CanonicalTrackDescriptor(artist="Singer, Composer", title="Theme")

        await resolver.collect_candidates(descriptor)

        queries = [call.args[0] for call in mock_gateway.search.await_args_list]
        assert queries[:2] == ["Theme Composer official audio", "Theme Singer song"]
        assert "Singer Theme" in queries

    @pytest.mark.asyncio
    async def test_ampersand_artist_in_discovery_query(self, mock_gateway):
        resolver = TrackResolver(mock_gateway, CandidateScorer())
        descriptor = CanonicalTrackDescriptor(artist="Singer & Composer", title="Theme")

        await resolver.collect_candidates(descriptor)

        queries = [call.args[0] for call in mock_gateway.search.await_args_list]
        assert queries[:2] == ["Theme Composer official audio", "Theme Singer song"]

    def test_dedupe_candidates(self):
        first = make_candidate("Same Title", uri="a")
        duplicate = make_candidate("same title", uri="b")
        other = make_candidate("Other", uri="c")

        assert dedupe_candidates([first, duplicate, other]) == [first, other]
