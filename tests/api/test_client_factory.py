"""
Tests for the API client factory
"""

import pytest
from unittest.mock import Mock, patch

from encore.api.client_factory import APIClientFactory
from encore.api.gemini_client import GeminiRecommendationProvider
from encore.api.openai_client import OpenAIRecommendationProvider
from encore.models.config_models import EngineConfig

OPENAI_KEY = "sk-" + "o" * 40
GEMINI_KEY = "AI" + "g" * 37


class TestAPIClientFactory:
    """Test suite for APIClientFactory"""

    @pytest.fixture
    def mock_model(self):
        with patch("encore.api.client_factory.create_gemini_model", return_value=Mock()) as factory:
            yield factory

    def test_lavalink_client_from_config(self):
        factory = APIClientFactory(EngineConfig(lavalink_host="node", lavalink_port=2444, lavalink_password="pw"))

        client = factory.create_lavalink_client()

        assert client.base_url == "http://node:2444"
        assert client.password == "pw"

    def test_shared_rate_limiter(self):
        factory = APIClientFactory(EngineConfig())

        first = factory.create_lavalink_client()
        second = factory.create_lavalink_client()

        assert first.rate_limiter is second.rate_limiter
        assert set(factory.get_rate_limiter_stats()) == {"lavalink"}

    def test_spotify_disabled_without_credentials(self):
        assert APIClientFactory(EngineConfig()).create_spotify_client() is None

    def test_spotify_client(self):
        config = EngineConfig(spotify_client_id="id", spotify_client_secret="secret")

        client = APIClientFactory(config).create_spotify_client()

        assert client.client_id == "id"

    def test_providers_follow_order(self, mock_model):
        config = EngineConfig(
            openai_api_key=OPENAI_KEY,
            gemini_api_key=GEMINI_KEY,
            provider_order=["gemini", "openai", "unknown"]
        )

        providers = APIClientFactory(config).create_recommendation_providers()

        assert [provider.name for provider in providers] == ["gemini", "openai"]
        assert isinstance(providers[0], GeminiRecommendationProvider)
        assert isinstance(providers[1], OpenAIRecommendationProvider)
        mock_model.assert_called_once_with(GEMINI_KEY, "gemini-1.5-flash")

    def test_unconfigured_providers_left_out(self, mock_model):
        config = EngineConfig(openai_api_key="too-short", gemini_api_key=None)

        assert APIClientFactory(config).create_recommendation_providers() == []
        mock_model.assert_not_called()
