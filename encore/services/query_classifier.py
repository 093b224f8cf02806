"""
Query Classifier

Decides how a user query should be resolved: Spotify link (track,
collection, artist or short link), YouTube URL, other direct URL, or free
text. Pure pattern matching, no network calls.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class QueryKind(Enum):
    """Resolution route for a query."""
    SPOTIFY_TRACK = "spotify_track"
    SPOTIFY_COLLECTION = "spotify_collection"
    SPOTIFY_ARTIST = "spotify_artist"
    SPOTIFY_SHORT_LINK = "spotify_short_link"
    YOUTUBE_URL = "youtube_url"
    DIRECT_URL = "direct_url"
    FREE_TEXT = "free_text"


@dataclass(frozen=True)
class ClassifiedQuery:
    """A query with the parts its route needs."""
    kind: QueryKind
    raw: str
    spotify_type: Optional[str] = None
    spotify_id: Optional[str] = None
    video_id: Optional[str] = None

    @property
    def is_url(self) -> bool:
        return self.kind is not QueryKind.FREE_TEXT


SPOTIFY_URL = re.compile(
    r"^https?://open\.spotify\.com/(?:intl-[a-z]{2}/)?(track|album|playlist|artist)/([A-Za-z0-9]+)",
    re.IGNORECASE,
)
SPOTIFY_URI = re.compile(r"^spotify:(track|album|playlist|artist):([A-Za-z0-9]+)$", re.IGNORECASE)
SPOTIFY_SHORT_LINK = re.compile(r"^https?://spotify\.link/[A-Za-z0-9]+/?$", re.IGNORECASE)
SPOTIFY_ID = re.compile(r"^[A-Za-z0-9]{22}$")

YOUTUBE_URL = re.compile(
    r"^https?://(?:www\.|m\.|music\.)?(?:youtube\.com|youtu\.be)/.+",
    re.IGNORECASE,
)
YOUTUBE_VIDEO_ID = re.compile(
    r"(?:youtube\.com/watch\?(?:.*&)?v=|youtu\.be/|youtube\.com/embed/|youtube\.com/v/|youtube\.com/shorts/)"
    r"([A-Za-z0-9_-]{11})"
)
HTTP_URL = re.compile(r"^https?://\S+$", re.IGNORECASE)


def is_valid_spotify_id(spotify_id: Optional[str]) -> bool:
    return bool(spotify_id) and bool(SPOTIFY_ID.match(spotify_id))


def extract_video_id(url: str) -> Optional[str]:
    """Eleven-character YouTube video id from a watch, short, embed or youtu.be URL."""
    match = YOUTUBE_VIDEO_ID.search(url)
    return match.group(1) if match else None


def classify_query(query: str) -> ClassifiedQuery:
    """
    Classify a user query.

    Spotify links with malformed ids fall through to the generic URL route
    (or free text for ``spotify:`` URIs) rather than failing.

    Args:
        query: Raw user input

    Returns:
        ClassifiedQuery describing the resolution route
    """
    text = (query or "").strip()

    match = SPOTIFY_URL.match(text) or SPOTIFY_URI.match(text)
    if match:
        spotify_type, spotify_id = match.group(1).lower(), match.group(2)
        if is_valid_spotify_id(spotify_id):
            if spotify_type == "track":
                kind = QueryKind.SPOTIFY_TRACK
            elif spotify_type == "artist":
                kind = QueryKind.SPOTIFY_ARTIST
            else:
                kind = QueryKind.SPOTIFY_COLLECTION
            return ClassifiedQuery(kind, text, spotify_type=spotify_type, spotify_id=spotify_id)

    if SPOTIFY_SHORT_LINK.match(text):
        return ClassifiedQuery(QueryKind.SPOTIFY_SHORT_LINK, text)

    if YOUTUBE_URL.match(text):
        return ClassifiedQuery(QueryKind.YOUTUBE_URL, text, video_id=extract_video_id(text))

    if HTTP_URL.match(text):
        return ClassifiedQuery(QueryKind.DIRECT_URL, text)

    return ClassifiedQuery(QueryKind.FREE_TEXT, text)
