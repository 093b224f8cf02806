"""
Cross-Platform Track Resolver

Turns any user query into playable tracks. Spotify links are converted to
canonical descriptors and matched against backend search results through
the candidate scorer; URLs are loaded directly with a cross-backend retry
for unreliable hosts; free text goes straight to the default backend.

``resolve`` never raises for "not found": callers get an empty
``ResolutionResult`` with a failure reason instead.
"""

import asyncio
from typing import List, Optional

import structlog

from ..api.base_client import APIRequestError
from ..api.spotify_client import SpotifyClient, SpotifyCollection
from ..exceptions import BackendUnavailable, EncoreError, NoCandidatesFound, ResolutionTimeout
from ..models.track_models import (
    Backend,
    Candidate,
    CanonicalTrackDescriptor,
    Requester,
    ResolutionResult,
    ResolutionType,
    Track,
)
from .cache_manager import CacheManager
from .candidate_scorer import CandidateScorer
from .query_classifier import ClassifiedQuery, QueryKind, classify_query
from .search_gateway import BackendSearchGateway

logger = structlog.get_logger(__name__)

DISCOVERY_BACKEND = Backend.YOUTUBE
ALTERNATE_BACKEND = Backend.SOUNDCLOUD
PROBE_LIMIT = 3
ALTERNATE_RESULTS_PER_QUERY = 5
ENOUGH_CANDIDATES = 3
MAX_CANDIDATES = 10
DEDUPE_PREFIX = 50


class TrackResolver:
    """Query router and Spotify-to-backend matcher."""

    def __init__(
        self,
        gateway: BackendSearchGateway,
        scorer: CandidateScorer,
        spotify: Optional[SpotifyClient] = None,
        cache_manager: Optional[CacheManager] = None,
        playlist_track_cap: int = 250
    ):
        """
        Initialize the resolver.

        Args:
            gateway: Backend search gateway
            scorer: Candidate scorer
            spotify: Spotify client; Spotify links resolve to nothing without it
            cache_manager: Optional cache for Spotify metadata
            playlist_track_cap: Maximum tracks resolved from one collection
        """
        self.gateway = gateway
        self.scorer = scorer
        self.spotify = spotify
        self.cache_manager = cache_manager
        self.playlist_track_cap = playlist_track_cap
        self.logger = logger.bind(service="TrackResolver")

    async def resolve(self, query: str, requester: Requester) -> ResolutionResult:
        """
        Resolve a user query to playable tracks.

        Args:
            query: Free text, a URL or a Spotify link/URI
            requester: Who asked; attached to every returned track

        Returns:
            A SINGLE or PLAYLIST result; ``ResolutionResult.empty()`` when
            nothing playable was found
        """
        classified = classify_query(query)
        self.logger.info("Resolving query", kind=classified.kind.value, query=classified.raw[:100])

        try:
            return await self._route(classified, requester)
        except (EncoreError, APIRequestError) as e:
            self.logger.warning(
                "Resolution failed",
                kind=classified.kind.value,
                query=classified.raw[:100],
                error=str(e),
                error_type=type(e).__name__
            )
            return ResolutionResult.empty(str(e))

    async def _route(self, classified: ClassifiedQuery, requester: Requester) -> ResolutionResult:
        kind = classified.kind

        if kind is QueryKind.SPOTIFY_SHORT_LINK:
            return await self._resolve_short_link(classified, requester)
        if kind is QueryKind.SPOTIFY_TRACK:
            return await self._resolve_spotify_track(classified.spotify_id, requester)
        if kind in (QueryKind.SPOTIFY_COLLECTION, QueryKind.SPOTIFY_ARTIST):
            return await self._resolve_spotify_collection(classified, requester)
        if kind is QueryKind.YOUTUBE_URL:
            return await self._resolve_unreliable_url(classified, requester)
        if kind is QueryKind.DIRECT_URL:
            return await self._resolve_direct_url(classified.raw, requester)
        return await self._resolve_free_text(classified.raw, requester)

    async def _resolve_free_text(self, query: str, requester: Requester) -> ResolutionResult:
        hits = await self._safe_search(query, self.gateway.default_backend)
        if not hits:
            return ResolutionResult.empty(f"No results for '{query}'")
        return ResolutionResult(type=ResolutionType.SINGLE, tracks=[Track(hits[0], requester)])

    async def _resolve_direct_url(self, url: str, requester: Requester) -> ResolutionResult:
        try:
            loaded = await self.gateway.load_result(url)
        except (BackendUnavailable, ResolutionTimeout) as e:
            return ResolutionResult.empty(str(e))

        if loaded.is_empty:
            return ResolutionResult.empty(loaded.error or f"Could not load {url}")
        return self._result_from_load(loaded, requester)

    async def _resolve_unreliable_url(self, classified: ClassifiedQuery, requester: Requester) -> ResolutionResult:
        """
        Load a YouTube URL, retrying on the alternate backend when the direct load fails.

        The title and author come from a secondary search on the video id;
        the alternate backend is then searched with ``"{author} {title}"``.
        """
        try:
            loaded = await self.gateway.load_result(classified.raw)
            if not loaded.is_empty:
                return self._result_from_load(loaded, requester)
            self.logger.info("Direct load returned nothing", url=classified.raw, error=loaded.error)
        except (BackendUnavailable, ResolutionTimeout) as e:
            self.logger.info("Direct load failed", url=classified.raw, error=str(e))

        if not classified.video_id:
            return ResolutionResult.empty("Could not load video")

        info_hits = await self._safe_search(classified.video_id, DISCOVERY_BACKEND)
        if not info_hits:
            return ResolutionResult.empty("Could not identify video")

        info = info_hits[0]
        descriptor = CanonicalTrackDescriptor(artist=info.author, title=info.title, duration_ms=info.duration_ms)
        alternates = await self._safe_search(f"{info.author} {info.title}", ALTERNATE_BACKEND)
        if not alternates:
            return ResolutionResult.empty(f"'{info.title}' is not available on another backend")

        self.logger.info("Video resolved on alternate backend", title=info.title, uri=alternates[0].uri)
        return ResolutionResult(
            type=ResolutionType.SINGLE,
            tracks=[Track(alternates[0], requester, canonical=descriptor)]
        )

    async def _resolve_short_link(self, classified: ClassifiedQuery, requester: Requester) -> ResolutionResult:
        spotify = self._require_spotify()
        expanded = classify_query(await spotify.expand_short_link(classified.raw))
        if expanded.kind in (QueryKind.SPOTIFY_SHORT_LINK, QueryKind.FREE_TEXT):
            return ResolutionResult.empty("Short link did not lead to Spotify content")
        return await self._route(expanded, requester)

    async def _resolve_spotify_track(self, track_id: str, requester: Requester) -> ResolutionResult:
        descriptor = await self._fetch_spotify_track(track_id)
        try:
            track = await self.resolve_descriptor(descriptor, requester)
        except NoCandidatesFound as e:
            return ResolutionResult.empty(str(e))
        return ResolutionResult(type=ResolutionType.SINGLE, tracks=[track])

    async def _resolve_spotify_collection(
        self,
        classified: ClassifiedQuery,
        requester: Requester
    ) -> ResolutionResult:
        """
        Resolve every track of an album, playlist or artist in parallel.

        Tracks that fail are dropped; order follows the collection.
        """
        collection = await self._fetch_spotify_collection(classified.spotify_type, classified.spotify_id)
        descriptors = collection.tracks[:self.playlist_track_cap]
        if not descriptors:
            return ResolutionResult.empty(f"'{collection.name}' has no tracks")

        results = await asyncio.gather(
            *(self.resolve_descriptor(descriptor, requester) for descriptor in descriptors),
            return_exceptions=True
        )
        tracks = [result for result in results if isinstance(result, Track)]
        failures = [result for result in results if isinstance(result, BaseException)]
        unexpected = [e for e in failures if not isinstance(e, (EncoreError, APIRequestError))]
        if unexpected:
            self.logger.error(
                "Unexpected errors while resolving collection",
                collection=collection.name,
                errors=[f"{type(e).__name__}: {e}" for e in unexpected[:5]]
            )

        self.logger.info(
            "Collection resolved",
            collection=collection.name,
            requested=len(descriptors),
            resolved=len(tracks),
            dropped=len(failures)
        )
        if not tracks:
            return ResolutionResult.empty(f"No tracks from '{collection.name}' could be found")
        return ResolutionResult(
            type=ResolutionType.PLAYLIST,
            tracks=tracks,
            playlist_name=collection.name
        )

    async def resolve_descriptor(self, descriptor: CanonicalTrackDescriptor, requester: Requester) -> Track:
        """
        Resolve one canonical track.

        Uses ``find_best_match`` and falls back to the top hit of a plain
        ``"{artist} {title}"`` search on the default backend, then the
        alternate backend.

        Raises:
            NoCandidatesFound: Neither step produced anything
            AllBackendsFailed: Every backend errored on the fallback search
        """
        candidate = await self.find_best_match(descriptor)

        if candidate is None:
            self.logger.info("No scored match, using degraded search", track=descriptor.search_query)
            backends = list(dict.fromkeys([self.gateway.default_backend, ALTERNATE_BACKEND]))
            hits = await self.gateway.search_any(descriptor.search_query, backends)
            candidate = hits[0] if hits else None

        if candidate is None:
            raise NoCandidatesFound(descriptor.search_query)
        return Track(candidate, requester, canonical=descriptor)

    async def find_best_match(self, descriptor: CanonicalTrackDescriptor) -> Optional[Candidate]:
        """Collect candidates for ``descriptor`` across backends and let the scorer pick one."""
        candidates = await self.collect_candidates(descriptor)
        if not candidates:
            return None
        return self.scorer.pick(descriptor, candidates)

    async def collect_candidates(self, descriptor: CanonicalTrackDescriptor) -> List[Candidate]:
        """
        Gather candidates for a canonical track.

        The discovery backend is searched first and its top hits are probed
        with direct loads (at most three at a time). When that yields fewer
        than three playable candidates, the alternate backend is searched
        with artist/title permutations. Duplicate titles are dropped.
        """
        title, first_artist = descriptor.title, descriptor.first_artist
        collected: List[Candidate] = []

        discovery_queries = [
            f"{title} {descriptor.second_artist or first_artist} official audio",
            f"{title} {first_artist} song",
        ]
        for query in discovery_queries:
            hits = await self._safe_search(query, DISCOVERY_BACKEND)
            uris = [hit.uri for hit in hits[:PROBE_LIMIT] if hit.uri]
            if not uris:
                continue
            playable = await self.gateway.load_many(uris)
            if playable:
                collected.extend(playable)
                break

        if len(collected) < ENOUGH_CANDIDATES:
            for query in (f"{first_artist} {title}", f"{title} {first_artist}"):
                hits = await self._safe_search(query, ALTERNATE_BACKEND)
                collected.extend(hits[:ALTERNATE_RESULTS_PER_QUERY])
                if len(collected) >= MAX_CANDIDATES:
                    break

        return dedupe_candidates(collected)

    async def _safe_search(self, query: str, backend: Backend) -> List[Candidate]:
        try:
            return await self.gateway.search(query, backend)
        except (BackendUnavailable, ResolutionTimeout) as e:
            self.logger.info("Search attempt failed", backend=backend.value, query=query, error=str(e))
            return []

    async def _fetch_spotify_track(self, track_id: str) -> CanonicalTrackDescriptor:
        spotify = self._require_spotify()
        cached = self._cache_get("spotify_tracks", track_id)
        if cached is not None:
            return cached

        descriptor = await spotify.get_track(track_id)
        self._cache_set("spotify_tracks", track_id, descriptor)
        return descriptor

    async def _fetch_spotify_collection(self, kind: str, collection_id: str) -> SpotifyCollection:
        spotify = self._require_spotify()
        key = f"{kind}:{collection_id}"
        cached = self._cache_get("spotify_collections", key)
        if cached is not None:
            return cached

        collection = await spotify.get_collection(kind, collection_id)
        self._cache_set("spotify_collections", key, collection)
        return collection

    def _require_spotify(self) -> SpotifyClient:
        if self.spotify is None:
            raise EncoreError("Spotify support is not configured")
        return self.spotify

    def _cache_get(self, cache_type: str, key: str):
        if self.cache_manager is None:
            return None
        return self.cache_manager.get(cache_type, key)

    def _cache_set(self, cache_type: str, key: str, value) -> None:
        if self.cache_manager is not None:
            self.cache_manager.set(cache_type, key, value)

    @staticmethod
    def _result_from_load(loaded, requester: Requester) -> ResolutionResult:
        if loaded.is_playlist:
            return ResolutionResult(
                type=ResolutionType.PLAYLIST,
                tracks=[Track(candidate, requester) for candidate in loaded.tracks],
                playlist_name=loaded.playlist_name
            )
        return ResolutionResult(type=ResolutionType.SINGLE, tracks=[Track(loaded.tracks[0], requester)])


def dedupe_candidates(candidates: List[Candidate]) -> List[Candidate]:
    """Drop candidates whose lower-cased title shares its first 50 characters with an earlier one."""
    seen = set()
    unique = []
    for candidate in candidates:
        key = candidate.title.lower()[:DEDUPE_PREFIX]
        if key in seen:
            continue
        seen.add(key)
        unique.append(candidate)
    return unique
