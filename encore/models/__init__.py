"""
Models Module

Data models and configuration for the Encore engine.
"""

from .track_models import (
    Backend,
    CanonicalTrackDescriptor,
    Candidate,
    ScoredCandidate,
    Requester,
    AUTOPLAY_REQUESTER,
    Track,
    ResolutionType,
    ResolutionResult,
    HistoryEntry,
    RecommendationOptions,
    RecommendationDescriptor,
)
from .config_models import EngineConfig

__all__ = [
    # Track models
    "Backend",
    "CanonicalTrackDescriptor",
    "Candidate",
    "ScoredCandidate",
    "Requester",
    "AUTOPLAY_REQUESTER",
    "Track",
    "ResolutionType",
    "ResolutionResult",
    "HistoryEntry",
    "RecommendationOptions",
    "RecommendationDescriptor",

    # Configuration
    "EngineConfig",
]
