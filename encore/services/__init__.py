"""
Services Module

The engine's components: backend search, query classification and track
resolution, candidate scoring, resilient recommendations and autoplay.
"""

from .cache_manager import CacheManager, TTLCache, CacheEntry
from .provider_health import (
    ProviderRateLimiter,
    CircuitBreaker,
    ProviderHealthState,
    ProviderHealthRegistry,
)
from .search_gateway import BackendSearchGateway
from .candidate_scorer import CandidateScorer, score_candidate, score_candidates, select_best
from .query_classifier import QueryKind, ClassifiedQuery, classify_query
from .track_resolver import TrackResolver, dedupe_candidates
from .recommendation_gateway import RecommendationProviderGateway
from .playback_session import PlaybackSession, InMemoryPlaybackSession
from .autoplay_manager import (
    AutoplayContinuityManager,
    AutoplaySessionState,
    AutoplayPhase,
    AutoplayDecision,
)

__all__ = [
    # Caching and provider health
    "CacheManager",
    "TTLCache",
    "CacheEntry",
    "ProviderRateLimiter",
    "CircuitBreaker",
    "ProviderHealthState",
    "ProviderHealthRegistry",

    # Resolution
    "BackendSearchGateway",
    "CandidateScorer",
    "score_candidate",
    "score_candidates",
    "select_best",
    "QueryKind",
    "ClassifiedQuery",
    "classify_query",
    "TrackResolver",
    "dedupe_candidates",

    # Recommendations and autoplay
    "RecommendationProviderGateway",
    "PlaybackSession",
    "InMemoryPlaybackSession",
    "AutoplayContinuityManager",
    "AutoplaySessionState",
    "AutoplayPhase",
    "AutoplayDecision",
]
