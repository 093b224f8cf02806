"""
Recommendation Provider Interface

Common contract for AI recommendation providers plus the prompt builder and
the response parser they share.
"""

import json
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Sequence

import structlog

from ..exceptions import InvalidProviderResponse
from ..models.track_models import (
    CanonicalTrackDescriptor,
    HistoryEntry,
    RecommendationDescriptor,
    RecommendationOptions,
)
from ..utils.text_utils import sanitize_string

logger = structlog.get_logger(__name__)

DEFAULT_REASON = "Similar musical style"
DEFAULT_SIMILARITY = 0.8
PROMPT_HISTORY_SIZE = 5

SYSTEM_PROMPT = (
    "You are a music recommendation AI assistant. Provide song recommendations in JSON "
    "format with specific track and artist names that actually exist. Always respond with "
    "valid JSON containing a \"recommendations\" array."
)

_CODE_FENCE = re.compile(r"```(?:json)?", re.IGNORECASE)
_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


class RecommendationProvider(ABC):
    """An AI service that suggests tracks similar to a canonical track."""

    name: str = "provider"

    @property
    @abstractmethod
    def is_configured(self) -> bool:
        """True when credentials are present and the provider may be called."""

    @abstractmethod
    async def fetch(
        self,
        track: CanonicalTrackDescriptor,
        history: Sequence[HistoryEntry],
        options: RecommendationOptions
    ) -> List[RecommendationDescriptor]:
        """
        Ask the provider for recommendations with exactly one upstream call.

        Raises:
            ProviderRateLimited: The provider answered with a rate-limit signal
            InvalidProviderResponse: The answer could not be parsed or was empty
            ProviderError: Any other failure
        """

    async def open(self) -> None:
        """Acquire network resources."""

    async def close(self) -> None:
        """Release network resources."""


def build_prompt(
    track: CanonicalTrackDescriptor,
    history: Sequence[HistoryEntry],
    options: RecommendationOptions
) -> str:
    """
    Build the user prompt for a recommendation request.

    Args:
        track: Track to find neighbours for
        history: Recently played tracks, oldest first
        options: Count and optional genre, mood and energy hints

    Returns:
        Prompt text demanding a JSON ``recommendations`` object
    """
    lines = [
        f"Based on the current track and listening history, recommend {options.count} "
        "similar songs that actually exist and are available on streaming platforms.",
        "",
        "Current Track:",
        f"- Title: \"{track.title}\"",
        f"- Artist: \"{track.artist}\"",
    ]

    recent = [entry for entry in history if entry.title and entry.artist][-PROMPT_HISTORY_SIZE:]
    if recent:
        lines.append("")
        lines.append(f"Recent Listening History (last {len(recent)} tracks):")
        for index, entry in enumerate(recent, start=1):
            lines.append(f"{index}. \"{entry.title}\" by {entry.artist}")

    hints = [
        ("Preferred Genre", options.genre),
        ("Desired Mood", options.mood),
        ("Energy Level", options.energy),
    ]
    if any(value for _, value in hints):
        lines.append("")
        lines.extend(f"{label}: {value}" for label, value in hints if value)

    lines.extend([
        "",
        "Respond ONLY with a valid JSON object in this exact format:",
        '{"recommendations": [{"title": "exact song title", "artist": "exact artist name", '
        '"reason": "brief explanation", "similarity": 0.8}]}',
        "Do not include any text outside the JSON object. Do not recommend the current track "
        "or tracks from the listening history.",
    ])
    return "\n".join(lines)


def parse_recommendation_payload(
    provider: str,
    content: Any,
    count: int
) -> List[RecommendationDescriptor]:
    """
    Turn a provider answer into recommendation descriptors.

    Markdown code fences are stripped and the first JSON object in the text is
    used. Entries without a non-empty string title and artist are dropped;
    missing reasons and similarities get defaults.

    Args:
        provider: Provider name, recorded on every descriptor
        content: Raw text (or an already decoded dict)
        count: Maximum number of descriptors to return

    Returns:
        At most ``count`` descriptors

    Raises:
        InvalidProviderResponse: No JSON object, no ``recommendations`` array,
            or no usable entries
    """
    payload = content if isinstance(content, dict) else _decode_json_object(provider, content)

    raw_items = payload.get("recommendations")
    if not isinstance(raw_items, list):
        raise InvalidProviderResponse(provider, "response has no recommendations array")

    recommendations = []
    for item in raw_items:
        descriptor = _descriptor_from_item(provider, item)
        if descriptor is not None:
            recommendations.append(descriptor)

    if not recommendations:
        raise InvalidProviderResponse(provider, "response contained no usable recommendations")

    dropped = len(raw_items) - len(recommendations)
    if dropped:
        logger.debug("Dropped malformed recommendations", provider=provider, dropped=dropped)

    return recommendations[:max(count, 0)]


def _decode_json_object(provider: str, content: Any) -> Dict[str, Any]:
    if not isinstance(content, str) or not content.strip():
        raise InvalidProviderResponse(provider, "empty response")

    text = _CODE_FENCE.sub("", content).strip()
    match = _JSON_OBJECT.search(text)
    if not match:
        raise InvalidProviderResponse(provider, "no JSON object in response")

    try:
        payload = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise InvalidProviderResponse(provider, f"malformed JSON: {e.msg}")

    if not isinstance(payload, dict):
        raise InvalidProviderResponse(provider, "JSON root is not an object")
    return payload


def _descriptor_from_item(provider: str, item: Any):
    if not isinstance(item, dict):
        return None
    title, artist = item.get("title"), item.get("artist")
    if not isinstance(title, str) or not isinstance(artist, str):
        return None
    title, artist = sanitize_string(title), sanitize_string(artist)
    if not title or not artist:
        return None

    reason = item.get("reason")
    reason = sanitize_string(reason) if isinstance(reason, str) and reason.strip() else DEFAULT_REASON

    similarity = item.get("similarity", DEFAULT_SIMILARITY)
    if isinstance(similarity, bool) or not isinstance(similarity, (int, float)):
        similarity = DEFAULT_SIMILARITY
    similarity = min(max(float(similarity), 0.0), 1.0)

    return RecommendationDescriptor(
        title=title,
        artist=artist,
        reason=reason,
        similarity=similarity,
        source=provider,
    )
