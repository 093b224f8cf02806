"""
Spotify Web API Client

Turns Spotify track, album, playlist and artist links into canonical track
descriptors. Spotify is only a metadata source here; audio always comes from
the search backends.
"""

import asyncio
import base64
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import aiohttp
import structlog

from ..models.track_models import CanonicalTrackDescriptor
from .base_client import APIRequestError, APITimeoutError, BaseAPIClient
from .rate_limiter import UnifiedRateLimiter

logger = structlog.get_logger(__name__)

MAX_PLAYLIST_PAGES = 20
MAX_PLAYLIST_TRACKS = 1000


@dataclass
class SpotifyCollection:
    """An album, playlist or artist top-tracks list."""
    kind: str
    name: str
    tracks: List[CanonicalTrackDescriptor] = field(default_factory=list)


class SpotifyClient(BaseAPIClient):
    """
    Spotify Web API client using the client-credentials flow.

    Inherits from BaseAPIClient for consistent HTTP handling.
    """

    BASE_URL = "https://api.spotify.com/v1"
    AUTH_URL = "https://accounts.spotify.com/api/token"

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        rate_limiter: Optional[UnifiedRateLimiter] = None,
        market: str = "US",
        timeout: float = 15
    ):
        """
        Initialize Spotify client.

        Args:
            client_id: Spotify client ID
            client_secret: Spotify client secret
            rate_limiter: Rate limiter instance (defaults to the Spotify profile)
            market: Market used for artist top tracks
            timeout: Request timeout in seconds
        """
        super().__init__(
            base_url=self.BASE_URL,
            rate_limiter=rate_limiter or UnifiedRateLimiter.for_spotify(),
            timeout=timeout,
            service_name="Spotify"
        )
        self.client_id = client_id
        self.client_secret = client_secret
        self.market = market
        self.access_token: Optional[str] = None
        self.token_expires_at: float = 0.0

    def _extract_api_error(self, data: Dict[str, Any]) -> Optional[str]:
        """
        Extract Spotify API error information from response data.

        Args:
            data: Parsed response data

        Returns:
            Error message if found, None otherwise
        """
        if isinstance(data, dict) and "error" in data:
            error_info = data["error"]
            if isinstance(error_info, dict):
                return error_info.get("message", f"Error {error_info.get('status', 'unknown')}")
            return str(error_info)
        return None

    async def _authenticate(self) -> None:
        """Authenticate with Spotify API using client credentials flow."""
        if not self.session:
            raise RuntimeError("Spotify client not initialized. Call open() first.")

        auth_b64 = base64.b64encode(f"{self.client_id}:{self.client_secret}".encode()).decode()
        headers = {
            "Authorization": f"Basic {auth_b64}",
            "Content-Type": "application/x-www-form-urlencoded"
        }

        try:
            async with self.session.post(
                self.AUTH_URL,
                headers=headers,
                data={"grant_type": "client_credentials"}
            ) as response:
                if response.status != 200:
                    body = await response.text()
                    self.logger.error("Spotify authentication failed", status=response.status)
                    raise APIRequestError(self.service_name, f"auth failed: {body[:200]}", status=response.status)

                token_data = await response.json()
        except asyncio.TimeoutError:
            self.logger.error("Spotify authentication timed out", timeout=self.timeout)
            raise APITimeoutError(self.service_name, f"auth timed out after {self.timeout}s")
        except aiohttp.ClientError as e:
            self.logger.error("Spotify authentication error", error=str(e))
            raise APIRequestError(self.service_name, f"auth error: {e}")

        self.access_token = token_data["access_token"]
        expires_in = token_data.get("expires_in", 3600)
        self.token_expires_at = time.monotonic() + expires_in - 60  # 1min buffer
        self.logger.info("Spotify authentication successful", expires_in=expires_in)

    async def _ensure_valid_token(self) -> None:
        """Ensure we have a valid access token."""
        if not self.access_token or time.monotonic() >= self.token_expires_at:
            await self._authenticate()

    async def _make_spotify_request(
        self,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        retries: int = 2
    ) -> Dict[str, Any]:
        """Make an authenticated request to the Web API."""
        await self._ensure_valid_token()
        return await self._make_request(
            endpoint=endpoint,
            params=params,
            headers={"Authorization": f"Bearer {self.access_token}"},
            retries=retries
        )

    async def get_track(self, track_id: str) -> CanonicalTrackDescriptor:
        """
        Fetch one track.

        Args:
            track_id: 22-character Spotify track id

        Returns:
            Canonical descriptor for the track
        """
        data = await self._make_spotify_request(f"tracks/{track_id}")
        descriptor = self._descriptor_from_track(data)
        if descriptor is None:
            raise APIRequestError(self.service_name, f"track {track_id} has no usable metadata")
        return descriptor

    async def get_album(self, album_id: str) -> SpotifyCollection:
        """Fetch an album and all of its tracks."""
        data = await self._make_spotify_request(f"albums/{album_id}")
        album_name = data.get("name") or "Unknown album"
        page = data.get("tracks") or {}

        tracks: List[CanonicalTrackDescriptor] = []
        for item in await self._collect_pages(page):
            descriptor = self._descriptor_from_track(item, album=album_name)
            if descriptor is not None:
                tracks.append(descriptor)

        return SpotifyCollection(kind="album", name=album_name, tracks=tracks)

    async def get_playlist(self, playlist_id: str) -> SpotifyCollection:
        """
        Fetch a playlist, following pagination.

        At most ``MAX_PLAYLIST_PAGES`` pages and ``MAX_PLAYLIST_TRACKS`` tracks
        are read. Local files and removed tracks are skipped.
        """
        data = await self._make_spotify_request(f"playlists/{playlist_id}")
        name = data.get("name") or "Unknown playlist"

        tracks: List[CanonicalTrackDescriptor] = []
        for item in await self._collect_pages(data.get("tracks") or {}):
            track = item.get("track") if isinstance(item, dict) else None
            if not track or track.get("is_local"):
                continue
            descriptor = self._descriptor_from_track(track)
            if descriptor is not None:
                tracks.append(descriptor)

        self.logger.info("Playlist fetched", playlist=name, track_count=len(tracks))
        return SpotifyCollection(kind="playlist", name=name, tracks=tracks)

    async def get_artist_top_tracks(self, artist_id: str) -> SpotifyCollection:
        """Fetch an artist's top tracks in the configured market."""
        artist = await self._make_spotify_request(f"artists/{artist_id}")
        data = await self._make_spotify_request(
            f"artists/{artist_id}/top-tracks",
            params={"market": self.market}
        )
        tracks = [
            descriptor
            for descriptor in (self._descriptor_from_track(item) for item in data.get("tracks", []))
            if descriptor is not None
        ]
        name = f"{artist.get('name') or 'Unknown artist'} - Top Tracks"
        return SpotifyCollection(kind="artist", name=name, tracks=tracks)

    async def get_collection(self, kind: str, collection_id: str) -> SpotifyCollection:
        """Dispatch to the album, playlist or artist fetcher."""
        fetchers = {
            "album": self.get_album,
            "playlist": self.get_playlist,
            "artist": self.get_artist_top_tracks,
        }
        if kind not in fetchers:
            raise ValueError(f"Unsupported Spotify collection type: {kind}")
        return await fetchers[kind](collection_id)

    async def expand_short_link(self, url: str) -> str:
        """
        Follow a ``spotify.link`` redirect.

        Returns:
            The final open.spotify.com URL
        """
        if not self.session:
            raise RuntimeError("Spotify client not initialized. Call open() first.")
        try:
            async with self.session.get(url, allow_redirects=True) as response:
                final_url = str(response.url)
        except asyncio.TimeoutError:
            raise APITimeoutError(self.service_name, f"expanding {url} timed out after {self.timeout}s")
        except aiohttp.ClientError as e:
            raise APIRequestError(self.service_name, f"could not expand {url}: {e}")

        self.logger.debug("Short link expanded", url=url, final_url=final_url)
        return final_url

    async def _collect_pages(self, first_page: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Gather ``items`` across ``next`` links within the page and track limits."""
        items = list(first_page.get("items") or [])
        next_url = first_page.get("next")
        pages = 1

        while next_url and pages < MAX_PLAYLIST_PAGES and len(items) < MAX_PLAYLIST_TRACKS:
            page = await self._make_spotify_request(next_url)
            items.extend(page.get("items") or [])
            next_url = page.get("next")
            pages += 1

        return items[:MAX_PLAYLIST_TRACKS]

    @staticmethod
    def _descriptor_from_track(
        track: Dict[str, Any],
        album: Optional[str] = None
    ) -> Optional[CanonicalTrackDescriptor]:
        """Convert a Web API track object; ``None`` when name or artists are missing."""
        if not isinstance(track, dict):
            return None
        artists = ", ".join(a.get("name", "") for a in track.get("artists") or [] if a.get("name"))
        descriptor = CanonicalTrackDescriptor(
            artist=artists,
            title=track.get("name") or "",
            duration_ms=track.get("duration_ms"),
            source_hint="spotify",
            album=album or (track.get("album") or {}).get("name"),
            external_url=(track.get("external_urls") or {}).get("spotify"),
        )
        return descriptor if descriptor.is_complete else None

    async def _health_probe(self) -> None:
        await self._ensure_valid_token()
