"""
Track Models

Data model shared by the resolution pipeline and the autoplay manager:
canonical descriptors coming from catalog services, playable candidates
coming from search backends, and the results handed back to callers.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from ..utils.text_utils import normalize_title, sanitize_string, split_artist_names, split_artists


class Backend(Enum):
    """Search backends reachable through the audio node."""
    YOUTUBE = "youtube"
    SOUNDCLOUD = "soundcloud"
    OTHER = "other"

    @property
    def search_prefix(self) -> Optional[str]:
        """Identifier prefix the audio node understands for text search."""
        return {
            Backend.YOUTUBE: "ytsearch:",
            Backend.SOUNDCLOUD: "scsearch:",
        }.get(self)

    @classmethod
    def from_source_name(cls, source_name: Optional[str]) -> "Backend":
        """Map an audio node ``sourceName`` value onto a backend."""
        if not source_name:
            return cls.OTHER
        source_name = source_name.lower()
        if source_name.startswith("youtube"):
            return cls.YOUTUBE
        if source_name == "soundcloud":
            return cls.SOUNDCLOUD
        return cls.OTHER


@dataclass(frozen=True)
class CanonicalTrackDescriptor:
    """
    Platform-neutral description of a track.

    ``artist`` may hold several artists joined with ", ". ``duration_ms`` is
    optional and only used for proximity scoring.
    """
    artist: str
    title: str
    duration_ms: Optional[int] = None
    source_hint: Optional[str] = None
    album: Optional[str] = None
    external_url: Optional[str] = None

    def __post_init__(self):
        # frozen dataclass, so normalise through object.__setattr__
        object.__setattr__(self, "artist", sanitize_string(self.artist))
        object.__setattr__(self, "title", sanitize_string(self.title))
        if self.duration_ms is not None and self.duration_ms <= 0:
            object.__setattr__(self, "duration_ms", None)

    @property
    def artist_aliases(self) -> List[str]:
        """Individual artist names, lower-cased."""
        return split_artists(self.artist)

    @property
    def first_artist(self) -> str:
        aliases = split_artist_names(self.artist)
        return aliases[0] if aliases else self.artist

    @property
    def second_artist(self) -> Optional[str]:
        aliases = split_artist_names(self.artist)
        return aliases[1] if len(aliases) > 1 else None

    @property
    def search_query(self) -> str:
        return f"{self.artist} {self.title}".strip()

    @property
    def is_complete(self) -> bool:
        return bool(self.artist and self.title)


@dataclass(frozen=True)
class Candidate:
    """A playable track returned by a search backend."""
    title: str
    author: str
    uri: str
    duration_ms: int
    backend: Backend
    thumbnail: Optional[str] = None
    identifier: Optional[str] = None
    encoded: Optional[str] = None
    isrc: Optional[str] = None

    @classmethod
    def from_lavalink(cls, track: Dict[str, Any]) -> "Candidate":
        """
        Build a candidate from an audio node track object.

        Args:
            track: ``{"encoded": ..., "info": {...}}`` as returned by ``/v4/loadtracks``

        Returns:
            Candidate instance
        """
        info = track.get("info", {})
        return cls(
            title=info.get("title") or "",
            author=info.get("author") or "",
            uri=info.get("uri") or "",
            duration_ms=int(info.get("length") or 0),
            backend=Backend.from_source_name(info.get("sourceName")),
            thumbnail=info.get("artworkUrl"),
            identifier=info.get("identifier"),
            encoded=track.get("encoded"),
            isrc=info.get("isrc"),
        )


@dataclass(frozen=True)
class ScoredCandidate:
    """A candidate annotated by the scorer."""
    candidate: Candidate
    score: int
    exclude_match_count: int

    @property
    def is_clean(self) -> bool:
        """True when no exclude-lexicon pattern matched the title."""
        return self.exclude_match_count == 0


@dataclass(frozen=True)
class Requester:
    """Who asked for a track."""
    id: str
    display_name: str


AUTOPLAY_REQUESTER = Requester(id="autoplay", display_name="Autoplay")


@dataclass(frozen=True)
class Track:
    """A resolved, enqueueable track."""
    candidate: Candidate
    requester: Requester
    canonical: Optional[CanonicalTrackDescriptor] = None

    @property
    def title(self) -> str:
        return self.candidate.title

    @property
    def author(self) -> str:
        return self.candidate.author

    @property
    def uri(self) -> str:
        return self.candidate.uri

    @property
    def duration_ms(self) -> int:
        return self.candidate.duration_ms

    def to_descriptor(self) -> CanonicalTrackDescriptor:
        """Descriptor for this track, preferring catalog data when it is known."""
        if self.canonical is not None and self.canonical.is_complete:
            return self.canonical
        return CanonicalTrackDescriptor(
            artist=self.candidate.author,
            title=self.candidate.title,
            duration_ms=self.candidate.duration_ms or None,
        )


class ResolutionType(Enum):
    """Shape of a resolution result."""
    SINGLE = "single"
    PLAYLIST = "playlist"


@dataclass
class ResolutionResult:
    """Outcome of resolving one user query."""
    type: ResolutionType
    tracks: List[Track] = field(default_factory=list)
    playlist_name: Optional[str] = None
    failure_reason: Optional[str] = None

    @classmethod
    def empty(cls, reason: str = "No results found") -> "ResolutionResult":
        """Explicit "nothing found" result."""
        return cls(type=ResolutionType.SINGLE, tracks=[], failure_reason=reason)

    @property
    def found(self) -> bool:
        return bool(self.tracks)


@dataclass(frozen=True)
class HistoryEntry:
    """A track remembered by the autoplay manager for one session."""
    title: str
    artist: str

    @property
    def normalized_title(self) -> str:
        return normalize_title(self.title)

    def same_track(self, other: "HistoryEntry") -> bool:
        return (
            self.normalized_title == other.normalized_title
            and normalize_title(self.artist) == normalize_title(other.artist)
        )

    @classmethod
    def from_track(cls, track: Track) -> "HistoryEntry":
        descriptor = track.to_descriptor()
        return cls(title=descriptor.title, artist=descriptor.artist)


@dataclass(frozen=True)
class RecommendationOptions:
    """Tuning knobs passed to recommendation providers."""
    count: int = 5
    genre: Optional[str] = None
    mood: Optional[str] = None
    energy: Optional[str] = None

    def cache_fields(self) -> Tuple[int, Optional[str], Optional[str], Optional[str]]:
        return (self.count, self.genre, self.mood, self.energy)


@dataclass(frozen=True)
class RecommendationDescriptor:
    """One track suggested by a recommendation provider."""
    title: str
    artist: str
    reason: str = "Similar musical style"
    similarity: float = 0.8
    source: Optional[str] = None

    @property
    def query(self) -> str:
        """Free-text query used to resolve this recommendation."""
        return f"{self.artist} {self.title}"
