"""
Recommendation Provider Gateway

Single entry point for AI recommendations. Answers from cache when it can,
otherwise walks the configured providers in preference order, skipping any
whose circuit is open or whose rate limiter refuses, and returns the first
valid non-empty list. It never raises: total failure is an empty list.
"""

import asyncio
from typing import Dict, List, Optional, Sequence, Tuple

import structlog

from ..api.recommendation_provider import RecommendationProvider
from ..exceptions import (
    AllProvidersFailed,
    InvalidProviderResponse,
    ProviderCircuitOpen,
    ProviderError,
    ProviderRateLimited,
)
from ..models.track_models import (
    CanonicalTrackDescriptor,
    HistoryEntry,
    RecommendationDescriptor,
    RecommendationOptions,
)
from .cache_manager import CacheManager
from .provider_health import ProviderHealthRegistry

logger = structlog.get_logger(__name__)

CACHE_HISTORY_SIZE = 3
CACHE_TYPE = "recommendations"


class RecommendationProviderGateway:
    """
    Resilient access to recommendation providers.

    Provider health lives in the injected ``ProviderHealthRegistry`` so that
    it survives across calls and can be shared or reset explicitly.
    """

    def __init__(
        self,
        providers: Sequence[RecommendationProvider],
        health: ProviderHealthRegistry,
        cache_manager: CacheManager,
        timeout: float = 15.0
    ):
        """
        Initialize the gateway.

        Args:
            providers: Providers in preference order
            health: Rate limiter and circuit breaker registry
            cache_manager: Cache registry holding the recommendations cache
            timeout: Upper bound for one provider attempt, in seconds
        """
        self.providers = list(providers)
        self.health = health
        self.cache_manager = cache_manager
        self.timeout = timeout
        self.logger = logger.bind(service="RecommendationGateway")

    @property
    def is_available(self) -> bool:
        return any(provider.is_configured for provider in self.providers)

    async def get_recommendations(
        self,
        track: CanonicalTrackDescriptor,
        recent_history: Sequence[HistoryEntry] = (),
        options: Optional[RecommendationOptions] = None
    ) -> List[RecommendationDescriptor]:
        """
        Get recommendations similar to ``track``.

        Args:
            track: Canonical descriptor of the seed track
            recent_history: Recently played tracks, oldest first
            options: Count and optional genre, mood and energy hints

        Returns:
            Recommendations from the first provider that answered validly, or
            an empty list when none did
        """
        options = options or RecommendationOptions()

        if not track.is_complete:
            self.logger.warning("Seed track lacks title or artist", title=track.title, artist=track.artist)
            return []

        key = self.cache_key(track, recent_history, options)
        cached = self.cache_manager.get(CACHE_TYPE, key)
        if cached is not None:
            self.logger.debug("Recommendations served from cache", track=track.title, count=len(cached))
            return list(cached)

        try:
            provider, recommendations = await self._query_providers(track, recent_history, options)
        except AllProvidersFailed as e:
            self.logger.warning("No recommendations available", track=track.title, error=str(e))
            return []

        self.cache_manager.set(CACHE_TYPE, key, tuple(recommendations))
        self.logger.info(
            "Recommendations generated",
            provider=provider,
            track=track.title,
            count=len(recommendations)
        )
        return recommendations

    @staticmethod
    def cache_key(
        track: CanonicalTrackDescriptor,
        recent_history: Sequence[HistoryEntry],
        options: RecommendationOptions
    ) -> str:
        """Key from the seed track, the last three history entries and the options."""
        history = [
            f"{entry.artist.lower()}-{entry.title.lower()}"
            for entry in list(recent_history)[-CACHE_HISTORY_SIZE:]
        ]
        return CacheManager.generate_key(
            f"{track.artist.lower()}-{track.title.lower()}",
            history,
            options.cache_fields()
        )

    async def _query_providers(
        self,
        track: CanonicalTrackDescriptor,
        recent_history: Sequence[HistoryEntry],
        options: RecommendationOptions
    ) -> Tuple[str, List[RecommendationDescriptor]]:
        attempts: List[Tuple[str, str]] = []

        for provider in self.providers:
            if not provider.is_configured:
                continue

            try:
                recommendations = await self._attempt(provider, track, recent_history, options)
            except (ProviderCircuitOpen, ProviderRateLimited) as e:
                self.logger.info("Provider skipped", provider=provider.name, reason=str(e))
                attempts.append((provider.name, str(e)))
                continue
            except ProviderError as e:
                self.logger.warning("Provider attempt failed", provider=provider.name, error=str(e))
                attempts.append((provider.name, str(e)))
                continue

            return provider.name, recommendations

        raise AllProvidersFailed(attempts)

    async def _attempt(
        self,
        provider: RecommendationProvider,
        track: CanonicalTrackDescriptor,
        recent_history: Sequence[HistoryEntry],
        options: RecommendationOptions
    ) -> List[RecommendationDescriptor]:
        """
        One guarded provider call.

        Rate-limit answers only feed the limiter; every other failure counts
        against the circuit breaker.
        """
        state = self.health.state(provider.name)

        if state.circuit.is_open():
            raise ProviderCircuitOpen(provider.name, state.circuit.remaining())
        if not state.limiter.try_acquire():
            raise ProviderRateLimited(provider.name, message="local rate limit, backing off")

        try:
            recommendations = await asyncio.wait_for(
                provider.fetch(track, recent_history, options),
                timeout=self.timeout
            )
        except ProviderRateLimited as e:
            self.health.record_rate_limited(provider.name, e.retry_after)
            raise
        except asyncio.TimeoutError:
            self.health.record_failure(provider.name, "timeout")
            raise ProviderError(provider.name, f"timed out after {self.timeout:.0f}s")
        except ProviderError as e:
            self.health.record_failure(provider.name, str(e))
            raise
        except Exception as e:
            self.logger.error(
                "Unexpected provider error",
                provider=provider.name,
                error=str(e),
                error_type=type(e).__name__
            )
            self.health.record_failure(provider.name, str(e))
            raise ProviderError(provider.name, f"unexpected error: {e}") from e

        if not recommendations:
            self.health.record_failure(provider.name, "empty recommendations")
            raise InvalidProviderResponse(provider.name, "returned empty recommendations")

        self.health.record_success(provider.name)
        return recommendations

    def clear_cache(self) -> None:
        self.cache_manager.clear(CACHE_TYPE)

    def reset(self) -> None:
        """Forget cached answers and provider health."""
        self.clear_cache()
        self.health.reset()
        self.logger.info("Recommendation gateway reset")

    def get_stats(self) -> Dict[str, object]:
        return {
            "providers": [provider.name for provider in self.providers if provider.is_configured],
            "cache": self.cache_manager.cache(CACHE_TYPE).get_stats(),
            "health": self.health.get_stats(),
        }
