"""
Engine Configuration

Pydantic settings model for the Encore engine. Values default to the
production limits and can be loaded from the process environment (and a
``.env`` file) with ``EngineConfig.from_env()``.
"""

import os
from typing import List, Optional

import structlog
from dotenv import load_dotenv
from pydantic import BaseModel, Field

logger = structlog.get_logger(__name__)

MIN_API_KEY_LENGTH = 20


class EngineConfig(BaseModel):
    """Overall engine configuration"""

    # Audio node
    lavalink_host: str = Field(default="localhost", description="Audio node host")
    lavalink_port: int = Field(default=2333, description="Audio node REST port")
    lavalink_password: str = Field(default="youshallnotpass", description="Audio node password")
    lavalink_secure: bool = Field(default=False, description="Use https for the audio node")

    # Catalog service
    spotify_client_id: Optional[str] = Field(default=None, description="Spotify client ID")
    spotify_client_secret: Optional[str] = Field(default=None, description="Spotify client secret")

    # Recommendation providers
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API key")
    openai_base_url: str = Field(default="https://api.openai.com/v1", description="OpenAI API base URL")
    openai_model: str = Field(default="gpt-3.5-turbo", description="OpenAI chat model")
    openai_max_tokens: int = Field(default=500, description="Completion token limit")
    openai_temperature: float = Field(default=0.7, description="Sampling temperature")
    gemini_api_key: Optional[str] = Field(default=None, description="Gemini API key")
    gemini_model: str = Field(default="gemini-1.5-flash", description="Gemini model name")
    provider_order: List[str] = Field(
        default_factory=lambda: ["openai", "gemini"],
        description="Provider preference order"
    )

    # Rate limiting and resilience
    openai_rate_limit: int = Field(default=3, description="OpenAI requests per minute")
    gemini_rate_limit: int = Field(default=10, description="Gemini requests per minute")
    rate_window_seconds: float = Field(default=60.0, description="Provider rate window length")
    backoff_initial_seconds: float = Field(default=1.0, description="Initial provider backoff")
    backoff_max_seconds: float = Field(default=300.0, description="Maximum provider backoff")
    circuit_failure_threshold: int = Field(default=3, description="Failures before a circuit opens")
    circuit_reset_seconds: float = Field(default=300.0, description="Open circuit cool-down")
    provider_timeout_seconds: float = Field(default=15.0, description="Per provider call timeout")
    backend_timeout_seconds: float = Field(default=15.0, description="Per backend call timeout")

    # Caching
    recommendation_cache_ttl_seconds: float = Field(default=1800.0, description="Recommendation cache TTL")
    recommendation_cache_max_entries: int = Field(default=100, description="Recommendation cache size")
    catalog_cache_ttl_seconds: float = Field(default=3600.0, description="Catalog metadata cache TTL")

    # Resolution
    default_backend: str = Field(default="youtube", description="Backend for free-text search")
    penalized_backends: List[str] = Field(
        default_factory=lambda: ["youtube"],
        description="Backends whose candidates take a reliability penalty"
    )
    playlist_track_cap: int = Field(default=250, description="Maximum tracks resolved per collection")
    max_concurrent_loads: int = Field(default=3, description="Concurrent direct loads per track")

    # Autoplay
    autoplay_debounce_seconds: float = Field(default=5.0, description="Minimum time between triggers")
    autoplay_history_limit: int = Field(default=50, description="History soft cap per session")
    autoplay_history_keep: int = Field(default=30, description="History kept after trimming")

    # Logging
    log_level: str = Field(default="INFO", description="Root log level")
    log_dir: str = Field(default="logs", description="Log file directory")

    @property
    def lavalink_url(self) -> str:
        scheme = "https" if self.lavalink_secure else "http"
        return f"{scheme}://{self.lavalink_host}:{self.lavalink_port}"

    @property
    def spotify_enabled(self) -> bool:
        return bool(self.spotify_client_id and self.spotify_client_secret)

    @property
    def openai_enabled(self) -> bool:
        return _usable_key(self.openai_api_key)

    @property
    def gemini_enabled(self) -> bool:
        return _usable_key(self.gemini_api_key)

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> "EngineConfig":
        """
        Build a configuration from environment variables.

        Args:
            dotenv_path: Optional explicit ``.env`` file; the default search applies otherwise

        Returns:
            EngineConfig instance
        """
        load_dotenv(dotenv_path)

        values = {
            "lavalink_host": os.getenv("LAVALINK_HOST"),
            "lavalink_port": os.getenv("LAVALINK_PORT"),
            "lavalink_password": os.getenv("LAVALINK_PASSWORD"),
            "lavalink_secure": os.getenv("LAVALINK_SECURE"),
            "spotify_client_id": os.getenv("SPOTIFY_CLIENT_ID"),
            "spotify_client_secret": os.getenv("SPOTIFY_CLIENT_SECRET"),
            "openai_api_key": os.getenv("OPENAI_API_KEY"),
            "openai_model": os.getenv("OPENAI_MODEL"),
            "gemini_api_key": os.getenv("GEMINI_API_KEY"),
            "gemini_model": os.getenv("GEMINI_MODEL"),
            "log_level": os.getenv("LOG_LEVEL"),
        }
        config = cls(**{key: value for key, value in values.items() if value is not None})

        for name, key in (("openai", config.openai_api_key), ("gemini", config.gemini_api_key)):
            if key and not _usable_key(key):
                logger.warning("API key looks invalid, provider disabled", provider=name)

        logger.info(
            "Engine configuration loaded",
            spotify=config.spotify_enabled,
            openai=config.openai_enabled,
            gemini=config.gemini_enabled,
            lavalink=config.lavalink_url
        )
        return config


def _usable_key(key: Optional[str]) -> bool:
    return bool(key) and len(key.strip()) >= MIN_API_KEY_LENGTH
