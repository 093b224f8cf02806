"""
Backend Search Gateway

Uniform search and load operations over the audio node's backends. The
gateway holds no state beyond configuration: every call is bounded by a
timeout, and upstream failures are logged here and raised as typed errors
so the caller can pick its fallback.
"""

import asyncio
from typing import Iterable, List, Optional

import structlog

from ..api.base_client import APIRequestError
from ..api.lavalink_client import LavalinkClient, LoadResult
from ..exceptions import AllBackendsFailed, BackendUnavailable, ResolutionTimeout
from ..models.track_models import Backend, Candidate

logger = structlog.get_logger(__name__)


class BackendSearchGateway:
    """Search and direct-load access to the configured backends."""

    def __init__(
        self,
        client: LavalinkClient,
        default_backend: Backend = Backend.YOUTUBE,
        timeout: float = 15.0,
        max_concurrent_loads: int = 3
    ):
        """
        Initialize the gateway.

        Args:
            client: Audio node REST client
            default_backend: Backend used for free-text queries
            timeout: Upper bound for one search or load, in seconds
            max_concurrent_loads: Concurrent loads allowed inside one ``load_many`` call
        """
        self.client = client
        self.default_backend = default_backend
        self.timeout = timeout
        self.max_concurrent_loads = max_concurrent_loads
        self.logger = logger.bind(service="BackendSearchGateway")

    async def search(self, query: str, backend: Optional[Backend] = None) -> List[Candidate]:
        """
        Search one backend.

        Args:
            query: Free-text query
            backend: Backend to search (the default backend when omitted)

        Returns:
            Candidates in backend rank order; empty when nothing matched

        Raises:
            BackendUnavailable: The backend errored
            ResolutionTimeout: The backend did not answer in time
        """
        backend = backend or self.default_backend
        result = await self._call(
            f"search {backend.value}",
            backend.value,
            self.client.search(query, backend)
        )

        if result.load_type == "error":
            self.logger.warning("Backend search error", backend=backend.value, query=query, error=result.error)
            raise BackendUnavailable(backend.value, result.error or "search failed")

        self.logger.debug("Backend search", backend=backend.value, query=query, results=len(result.tracks))
        return result.tracks

    async def search_any(self, query: str, backends: Iterable[Backend]) -> List[Candidate]:
        """
        Search backends in order and return the first non-empty result.

        Raises:
            AllBackendsFailed: Every backend errored (empty answers are not errors)
        """
        failed = []
        answered = False
        for backend in backends:
            try:
                results = await self.search(query, backend)
            except (BackendUnavailable, ResolutionTimeout):
                failed.append(backend.value)
                continue
            answered = True
            if results:
                return results

        if failed and not answered:
            raise AllBackendsFailed(query, failed)
        return []

    async def load_result(self, uri: str) -> LoadResult:
        """
        Load a direct URI and keep the node's full answer (playlist name included).

        Raises:
            BackendUnavailable: The node could not be reached
            ResolutionTimeout: The node did not answer in time
        """
        return await self._call("load", "direct", self.client.load_tracks(uri))

    async def load(self, uri: str) -> Optional[Candidate]:
        """
        Load a direct URI.

        Returns:
            The first loaded track, or ``None`` when the node could not load it
        """
        result = await self.load_result(uri)
        if result.load_type == "error":
            self.logger.info("Direct load failed", uri=uri, error=result.error)
            return None
        return result.tracks[0] if result.tracks else None

    async def load_many(self, uris: Iterable[str]) -> List[Candidate]:
        """
        Load several URIs with bounded concurrency.

        Individual failures are logged and skipped; the order of ``uris`` is kept.
        """
        semaphore = asyncio.Semaphore(self.max_concurrent_loads)

        async def load_one(uri: str) -> Optional[Candidate]:
            async with semaphore:
                try:
                    return await self.load(uri)
                except (BackendUnavailable, ResolutionTimeout) as e:
                    self.logger.debug("Load skipped", uri=uri, error=str(e))
                    return None

        results = await asyncio.gather(*(load_one(uri) for uri in uris))
        return [candidate for candidate in results if candidate is not None]

    async def _call(self, operation: str, backend: str, awaitable):
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout)
        except asyncio.TimeoutError:
            self.logger.warning("Backend call timed out", operation=operation, timeout=self.timeout)
            raise ResolutionTimeout(operation, self.timeout)
        except APIRequestError as e:
            self.logger.warning("Backend call failed", operation=operation, error=str(e))
            raise BackendUnavailable(backend, str(e))
