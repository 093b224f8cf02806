"""
API Module

Clients for the services the engine depends on: the audio node, the Spotify
catalog and the AI recommendation providers.
"""

from .base_client import BaseAPIClient, APIRequestError, APIRateLimitError, APITimeoutError
from .rate_limiter import UnifiedRateLimiter
from .lavalink_client import LavalinkClient, LoadResult
from .spotify_client import SpotifyClient, SpotifyCollection
from .recommendation_provider import (
    RecommendationProvider,
    build_prompt,
    parse_recommendation_payload,
)
from .openai_client import OpenAIRecommendationProvider
from .gemini_client import GeminiRecommendationProvider, create_gemini_model
from .client_factory import APIClientFactory

__all__ = [
    # Base infrastructure
    "BaseAPIClient",
    "APIRequestError",
    "APIRateLimitError",
    "APITimeoutError",
    "UnifiedRateLimiter",

    # Audio node
    "LavalinkClient",
    "LoadResult",

    # Catalog
    "SpotifyClient",
    "SpotifyCollection",

    # Recommendation providers
    "RecommendationProvider",
    "build_prompt",
    "parse_recommendation_payload",
    "OpenAIRecommendationProvider",
    "GeminiRecommendationProvider",
    "create_gemini_model",

    # Client factory
    "APIClientFactory",
]
