"""
OpenAI Recommendation Provider

Chat-completions client that asks for a JSON object of recommendations.
"""

from typing import Any, Dict, List, Optional, Sequence

import structlog

from ..exceptions import InvalidProviderResponse, ProviderError, ProviderRateLimited
from ..models.track_models import (
    CanonicalTrackDescriptor,
    HistoryEntry,
    RecommendationDescriptor,
    RecommendationOptions,
)
from .base_client import APIRateLimitError, APIRequestError, BaseAPIClient
from .recommendation_provider import (
    SYSTEM_PROMPT,
    RecommendationProvider,
    build_prompt,
    parse_recommendation_payload,
)

logger = structlog.get_logger(__name__)


class OpenAIRecommendationProvider(BaseAPIClient, RecommendationProvider):
    """
    OpenAI chat-completions provider.

    Every ``fetch`` is a single POST without client-side retries; retry and
    skip decisions belong to the recommendation gateway.
    """

    name = "openai"

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "gpt-3.5-turbo",
        base_url: str = "https://api.openai.com/v1",
        max_tokens: int = 500,
        temperature: float = 0.7,
        timeout: float = 15
    ):
        """
        Initialize the provider.

        Args:
            api_key: OpenAI API key; the provider reports unconfigured without one
            model: Chat model name
            base_url: API base URL
            max_tokens: Completion token limit
            temperature: Sampling temperature
            timeout: Request timeout in seconds
        """
        super().__init__(base_url=base_url, rate_limiter=None, timeout=timeout, service_name="OpenAI")
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _extract_api_error(self, data: Any) -> Optional[str]:
        if isinstance(data, dict) and isinstance(data.get("error"), dict):
            return data["error"].get("message", "unknown error")
        return None

    async def fetch(
        self,
        track: CanonicalTrackDescriptor,
        history: Sequence[HistoryEntry],
        options: RecommendationOptions
    ) -> List[RecommendationDescriptor]:
        body = self._build_request_body(build_prompt(track, history, options))

        try:
            data = await self._make_request(
                "/chat/completions",
                method="POST",
                headers={"Authorization": f"Bearer {self.api_key}"},
                json_body=body,
                retries=0
            )
        except APIRateLimitError as e:
            raise ProviderRateLimited(self.name, retry_after=e.retry_after)
        except APIRequestError as e:
            raise ProviderError(self.name, str(e))

        content = self._extract_content(data)
        recommendations = parse_recommendation_payload(self.name, content, options.count)
        self.logger.info(
            "OpenAI recommendations received",
            track=track.title,
            count=len(recommendations)
        )
        return recommendations

    def _build_request_body(self, prompt: str) -> Dict[str, Any]:
        return {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "response_format": {"type": "json_object"},
        }

    def _extract_content(self, data: Dict[str, Any]) -> str:
        try:
            return data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            raise InvalidProviderResponse(self.name, "response has no message content")
