"""
API Client Factory

Creates every upstream client from one ``EngineConfig`` so that pacing
limiters are shared between clients of the same service.
"""

from typing import Dict, List, Optional

import structlog

from ..models.config_models import EngineConfig
from .gemini_client import GeminiRecommendationProvider, create_gemini_model
from .lavalink_client import LavalinkClient
from .openai_client import OpenAIRecommendationProvider
from .rate_limiter import UnifiedRateLimiter
from .recommendation_provider import RecommendationProvider
from .spotify_client import SpotifyClient

logger = structlog.get_logger(__name__)


class APIClientFactory:
    """
    Factory for creating configured API clients.

    Keeps one outbound rate limiter per service and hands it to every client
    it builds for that service.
    """

    def __init__(self, config: EngineConfig):
        """
        Initialize client factory.

        Args:
            config: Engine configuration
        """
        self.config = config
        self.logger = logger.bind(service="APIClientFactory")
        self._rate_limiters: Dict[str, UnifiedRateLimiter] = {}

    def _limiter(self, key: str, builder) -> UnifiedRateLimiter:
        if key not in self._rate_limiters:
            self._rate_limiters[key] = builder()
        return self._rate_limiters[key]

    def create_lavalink_client(self) -> LavalinkClient:
        """Create the audio node client."""
        client = LavalinkClient(
            base_url=self.config.lavalink_url,
            password=self.config.lavalink_password,
            rate_limiter=self._limiter("lavalink", UnifiedRateLimiter.for_lavalink),
            timeout=self.config.backend_timeout_seconds
        )
        self.logger.info("Lavalink client created", url=self.config.lavalink_url)
        return client

    def create_spotify_client(self) -> Optional[SpotifyClient]:
        """Create the Spotify client, or ``None`` when credentials are missing."""
        if not self.config.spotify_enabled:
            self.logger.warning("Spotify credentials missing, Spotify links disabled")
            return None

        client = SpotifyClient(
            client_id=self.config.spotify_client_id,
            client_secret=self.config.spotify_client_secret,
            rate_limiter=self._limiter("spotify", UnifiedRateLimiter.for_spotify),
            timeout=self.config.backend_timeout_seconds
        )
        self.logger.info("Spotify client created")
        return client

    def create_recommendation_providers(self) -> List[RecommendationProvider]:
        """
        Create the configured providers in preference order.

        Unknown names in ``provider_order`` are ignored with a warning and
        providers without usable credentials are left out.
        """
        builders = {
            "openai": self._create_openai_provider,
            "gemini": self._create_gemini_provider,
        }

        providers: List[RecommendationProvider] = []
        for name in self.config.provider_order:
            builder = builders.get(name)
            if builder is None:
                self.logger.warning("Unknown recommendation provider", provider=name)
                continue
            provider = builder()
            if provider is not None:
                providers.append(provider)

        self.logger.info("Recommendation providers created", providers=[p.name for p in providers])
        return providers

    def _create_openai_provider(self) -> Optional[OpenAIRecommendationProvider]:
        if not self.config.openai_enabled:
            return None
        return OpenAIRecommendationProvider(
            api_key=self.config.openai_api_key,
            model=self.config.openai_model,
            base_url=self.config.openai_base_url,
            max_tokens=self.config.openai_max_tokens,
            temperature=self.config.openai_temperature,
            timeout=self.config.provider_timeout_seconds
        )

    def _create_gemini_provider(self) -> Optional[GeminiRecommendationProvider]:
        if not self.config.gemini_enabled:
            return None
        model = create_gemini_model(self.config.gemini_api_key, self.config.gemini_model)
        return GeminiRecommendationProvider(model, timeout=self.config.provider_timeout_seconds)

    def get_rate_limiter_stats(self) -> Dict[str, dict]:
        """Usage statistics for every shared limiter."""
        return {key: limiter.get_current_usage() for key, limiter in self._rate_limiters.items()}
