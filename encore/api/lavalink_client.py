"""
Lavalink REST Client

Talks to the audio node's ``/v4/loadtracks`` endpoint, which both loads
direct URLs and runs prefixed text searches (``ytsearch:``, ``scsearch:``).
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import structlog

from ..models.track_models import Backend, Candidate
from .base_client import APIRequestError, BaseAPIClient
from .rate_limiter import UnifiedRateLimiter

logger = structlog.get_logger(__name__)


@dataclass
class LoadResult:
    """Parsed ``/v4/loadtracks`` answer."""
    load_type: str
    tracks: List[Candidate] = field(default_factory=list)
    playlist_name: Optional[str] = None
    error: Optional[str] = None

    @property
    def is_playlist(self) -> bool:
        return self.load_type == "playlist"

    @property
    def is_empty(self) -> bool:
        return not self.tracks

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "LoadResult":
        """
        Parse a load response.

        Args:
            payload: Decoded JSON with ``loadType`` and ``data``

        Returns:
            LoadResult; ``error`` carries the node's message for failed loads
        """
        load_type = payload.get("loadType", "empty")
        data = payload.get("data")

        if load_type == "track" and isinstance(data, dict):
            return cls(load_type, [Candidate.from_lavalink(data)])
        if load_type == "search" and isinstance(data, list):
            return cls(load_type, [Candidate.from_lavalink(item) for item in data])
        if load_type == "playlist" and isinstance(data, dict):
            return cls(
                load_type,
                [Candidate.from_lavalink(item) for item in data.get("tracks", [])],
                playlist_name=data.get("info", {}).get("name"),
            )
        if load_type == "error":
            message = data.get("message") if isinstance(data, dict) else None
            return cls(load_type, error=message or "unknown load error")
        return cls("empty")


class LavalinkClient(BaseAPIClient):
    """
    Audio node REST client.

    Load failures reported by the node come back as a ``LoadResult`` with
    ``load_type == "error"``; transport failures raise ``APIRequestError``.
    """

    def __init__(
        self,
        base_url: str,
        password: str,
        rate_limiter: Optional[UnifiedRateLimiter] = None,
        timeout: float = 15
    ):
        """
        Initialize the audio node client.

        Args:
            base_url: ``http(s)://host:port`` of the node
            password: Node password, sent as the Authorization header
            rate_limiter: Outbound pacing (defaults to the audio node profile)
            timeout: Request timeout in seconds
        """
        super().__init__(
            base_url=base_url,
            rate_limiter=rate_limiter or UnifiedRateLimiter.for_lavalink(),
            timeout=timeout,
            service_name="Lavalink"
        )
        self.password = password

    def _extract_api_error(self, data: Any) -> Optional[str]:
        # loadtracks reports failures through loadType, REST errors carry "error"
        if isinstance(data, dict) and "error" in data and "status" in data:
            return f"{data.get('status')} {data.get('error')}: {data.get('message', '')}".strip()
        return None

    async def load_tracks(self, identifier: str) -> LoadResult:
        """
        Load a URL or run a prefixed search.

        Args:
            identifier: Direct URI or ``<prefix>:<query>``

        Returns:
            Parsed load result
        """
        data = await self._make_request(
            "/v4/loadtracks",
            params={"identifier": identifier},
            headers={"Authorization": self.password},
            retries=1
        )
        result = LoadResult.from_payload(data)
        self.logger.debug(
            "Tracks loaded",
            identifier=identifier[:80],
            load_type=result.load_type,
            track_count=len(result.tracks)
        )
        return result

    async def search(self, query: str, backend: Backend) -> LoadResult:
        """Run a text search on one backend."""
        prefix = backend.search_prefix
        if prefix is None:
            raise APIRequestError(self.service_name, f"{backend.value} does not support search")
        return await self.load_tracks(f"{prefix}{query}")

    async def _health_probe(self) -> None:
        await self._make_request("/version", headers={"Authorization": self.password}, retries=0)

    async def _parse_response(self, response) -> Any:
        # /version answers with plain text
        if response.content_type == "text/plain":
            return {"version": await response.text()}
        return await super()._parse_response(response)
