"""
Gemini Recommendation Provider

Wraps a ``google.generativeai`` model. The model object is injected so the
engine can share one configured model and tests can substitute a mock.
"""

from typing import Any, List, Optional, Sequence

import google.generativeai as genai
import structlog
from google.api_core import exceptions as google_exceptions

from ..exceptions import InvalidProviderResponse, ProviderError, ProviderRateLimited
from ..models.track_models import (
    CanonicalTrackDescriptor,
    HistoryEntry,
    RecommendationDescriptor,
    RecommendationOptions,
)
from .recommendation_provider import RecommendationProvider, build_prompt, parse_recommendation_payload

logger = structlog.get_logger(__name__)


def create_gemini_model(api_key: str, model_name: str = "gemini-1.5-flash") -> "genai.GenerativeModel":
    """Configure the SDK with ``api_key`` and return a model that answers in JSON."""
    genai.configure(api_key=api_key)
    return genai.GenerativeModel(
        model_name,
        generation_config={"response_mime_type": "application/json", "temperature": 0.7},
    )


class GeminiRecommendationProvider(RecommendationProvider):
    """Gemini provider using ``generate_content_async``."""

    name = "gemini"

    def __init__(self, gemini_client: Optional[Any], timeout: float = 15):
        """
        Initialize the provider.

        Args:
            gemini_client: A ``GenerativeModel`` (``None`` leaves the provider unconfigured)
            timeout: Request timeout in seconds
        """
        self.gemini_client = gemini_client
        self.timeout = timeout
        self.logger = logger.bind(service="GeminiProvider")

    @property
    def is_configured(self) -> bool:
        return self.gemini_client is not None

    async def fetch(
        self,
        track: CanonicalTrackDescriptor,
        history: Sequence[HistoryEntry],
        options: RecommendationOptions
    ) -> List[RecommendationDescriptor]:
        prompt = build_prompt(track, history, options)

        try:
            response = await self.gemini_client.generate_content_async(
                prompt,
                request_options={"timeout": self.timeout}
            )
        except google_exceptions.ResourceExhausted as e:
            raise ProviderRateLimited(self.name, message=str(e))
        except google_exceptions.GoogleAPIError as e:
            raise ProviderError(self.name, str(e))

        recommendations = parse_recommendation_payload(self.name, self._response_text(response), options.count)
        self.logger.info(
            "Gemini recommendations received",
            track=track.title,
            count=len(recommendations)
        )
        return recommendations

    def _response_text(self, response: Any) -> str:
        """Text of the first candidate part; blocked or empty answers are invalid."""
        try:
            return response.candidates[0].content.parts[0].text
        except (AttributeError, IndexError, TypeError):
            raise InvalidProviderResponse(self.name, "response has no candidate text")
