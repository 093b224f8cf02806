"""
Encore Engine

Wires the clients and services into one long-lived engine object with an
explicit lifecycle. The playback layer calls ``resolve``, ``on_track_start``
and ``on_queue_empty``; everything else stays internal.

Running the module resolves a query from the command line, which is handy
for checking node and API credentials:

    python -m encore.main "artist - song"
"""

import asyncio
import random
import sys
import time
from typing import Any, Dict, List, Optional

import structlog

from .api.client_factory import APIClientFactory
from .api.lavalink_client import LavalinkClient
from .api.recommendation_provider import RecommendationProvider
from .api.spotify_client import SpotifyClient
from .exceptions import ConfigurationError
from .models.config_models import EngineConfig
from .models.track_models import Backend, Requester, ResolutionResult, Track
from .services.autoplay_manager import AutoplayContinuityManager, AutoplayDecision
from .services.cache_manager import CacheManager
from .services.candidate_scorer import CandidateScorer
from .services.playback_session import PlaybackSession
from .services.provider_health import ProviderHealthRegistry
from .services.recommendation_gateway import RecommendationProviderGateway
from .services.search_gateway import BackendSearchGateway
from .services.track_resolver import TrackResolver
from .utils.logging_config import log_performance, set_session_context, setup_logging
from .utils.text_utils import format_duration

logger = structlog.get_logger(__name__)


class EncoreEngine:
    """
    Track resolution and autoplay engine.

    Construct once at startup, ``await start()`` (or use ``async with``)
    before use, and ``await close()`` on shutdown.
    """

    def __init__(
        self,
        config: EngineConfig,
        lavalink: Optional[LavalinkClient] = None,
        spotify: Optional[SpotifyClient] = None,
        providers: Optional[List[RecommendationProvider]] = None,
        rng: Optional[random.Random] = None
    ):
        """
        Build every component from ``config``.

        Args:
            config: Engine configuration
            lavalink: Audio node client override
            spotify: Spotify client override
            providers: Recommendation provider override, in preference order
            rng: Random source for autoplay fallbacks
        """
        self.config = config
        self.factory = APIClientFactory(config)

        self.lavalink = lavalink or self.factory.create_lavalink_client()
        self.spotify = spotify if spotify is not None else self.factory.create_spotify_client()
        self.providers = providers if providers is not None else self.factory.create_recommendation_providers()

        self.cache_manager = CacheManager(
            recommendation_ttl=config.recommendation_cache_ttl_seconds,
            recommendation_max_entries=config.recommendation_cache_max_entries,
            catalog_ttl=config.catalog_cache_ttl_seconds
        )
        self.health = ProviderHealthRegistry(
            budgets={"openai": config.openai_rate_limit, "gemini": config.gemini_rate_limit},
            window_seconds=config.rate_window_seconds,
            initial_backoff=config.backoff_initial_seconds,
            max_backoff=config.backoff_max_seconds,
            failure_threshold=config.circuit_failure_threshold,
            reset_timeout=config.circuit_reset_seconds
        )

        self.search = BackendSearchGateway(
            self.lavalink,
            default_backend=_backend(config.default_backend),
            timeout=config.backend_timeout_seconds,
            max_concurrent_loads=config.max_concurrent_loads
        )
        self.scorer = CandidateScorer(_backend(name) for name in config.penalized_backends)
        self.resolver = TrackResolver(
            self.search,
            self.scorer,
            spotify=self.spotify,
            cache_manager=self.cache_manager,
            playlist_track_cap=config.playlist_track_cap
        )
        self.recommendations = RecommendationProviderGateway(
            self.providers,
            self.health,
            self.cache_manager,
            timeout=config.provider_timeout_seconds
        )
        self.autoplay = AutoplayContinuityManager(
            self.recommendations,
            self.resolver,
            self.search,
            debounce_seconds=config.autoplay_debounce_seconds,
            history_limit=config.autoplay_history_limit,
            history_keep=config.autoplay_history_keep,
            rng=rng
        )

        self.started = False
        self.logger = logger.bind(service="EncoreEngine")

    async def start(self) -> None:
        """Open HTTP sessions for every upstream client."""
        if self.started:
            return
        await self.lavalink.open()
        if self.spotify is not None:
            await self.spotify.open()
        for provider in self.providers:
            await provider.open()
        self.started = True
        self.logger.info(
            "Engine started",
            spotify=self.spotify is not None,
            providers=[provider.name for provider in self.providers]
        )

    async def close(self) -> None:
        """Close every upstream session."""
        for provider in self.providers:
            await provider.close()
        if self.spotify is not None:
            await self.spotify.close()
        await self.lavalink.close()
        self.started = False
        self.logger.info("Engine stopped")

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def resolve(self, query: str, requester: Requester) -> ResolutionResult:
        """Resolve a user query; see ``TrackResolver.resolve``."""
        self._ensure_started()
        start_time = time.monotonic()
        result = await self.resolver.resolve(query, requester)
        log_performance(
            "resolve",
            time.monotonic() - start_time,
            tracks=len(result.tracks),
            result_type=result.type.value
        )
        return result

    async def on_track_start(self, session: PlaybackSession, track: Track) -> Optional[AutoplayDecision]:
        """Playback hook: a track started playing."""
        self._ensure_started()
        set_session_context(session.session_id, track.requester.id)
        return await self.autoplay.on_track_start(session, track)

    async def on_queue_empty(self, session: PlaybackSession) -> Optional[AutoplayDecision]:
        """Playback hook: the queue ran out."""
        self._ensure_started()
        set_session_context(session.session_id)
        return await self.autoplay.on_queue_empty(session)

    def on_session_destroyed(self, session_id: str) -> None:
        self.autoplay.forget(session_id)

    async def health_check(self) -> Dict[str, Any]:
        """Reachability of the audio node and, when configured, Spotify."""
        checks = {"lavalink": await self.lavalink.health_check()}
        if self.spotify is not None:
            checks["spotify"] = await self.spotify.health_check()
        return {
            "healthy": all(check["healthy"] for check in checks.values()),
            "services": checks,
            "recommendations_available": self.recommendations.is_available,
        }

    def get_status(self) -> Dict[str, Any]:
        """Component status for diagnostics."""
        return {
            "started": self.started,
            "lavalink": self.lavalink.get_service_info(),
            "spotify": self.spotify.get_service_info() if self.spotify else None,
            "recommendations": self.recommendations.get_stats(),
            "caches": self.cache_manager.get_cache_stats(),
            "autoplay_sessions": self.autoplay.get_stats(),
            "rate_limiters": self.factory.get_rate_limiter_stats(),
        }

    def _ensure_started(self) -> None:
        if not self.started:
            raise ConfigurationError("Engine not started. Call start() first.")


def _backend(name: str) -> Backend:
    try:
        return Backend(name.lower())
    except ValueError:
        raise ConfigurationError(f"Unknown backend: {name}")


async def _resolve_from_cli(config: EngineConfig, query: str) -> int:
    async with EncoreEngine(config) as engine:
        result = await engine.resolve(query, Requester(id="cli", display_name="Command line"))

    if not result.found:
        print(f"Nothing found: {result.failure_reason}")
        return 1

    if result.playlist_name:
        print(f"Playlist: {result.playlist_name} ({len(result.tracks)} tracks)")
    for track in result.tracks[:25]:
        print(f"[{track.candidate.backend.value}] {track.author} - {track.title} "
              f"({format_duration(track.duration_ms)}) {track.uri}")
    return 0


def main():
    """Command line entry point."""
    if len(sys.argv) < 2:
        print("Usage: python -m encore.main <query>")
        sys.exit(2)

    config = EngineConfig.from_env()
    setup_logging(log_dir=config.log_dir, log_level=config.log_level)
    sys.exit(asyncio.run(_resolve_from_cli(config, " ".join(sys.argv[1:]))))


if __name__ == "__main__":
    main()
