"""
Playback Session Interface

The capabilities the autoplay manager needs from the playback layer. The
voice/player integration implements ``PlaybackSession``; the engine never
reaches into player internals.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from ..models.track_models import Track


class PlaybackSession(ABC):
    """One guild/room's playback state, as seen by the engine."""

    @property
    @abstractmethod
    def session_id(self) -> str:
        """Stable identifier of the session."""

    @property
    @abstractmethod
    def autoplay_enabled(self) -> bool:
        """Whether the session wants autoplay continuation."""

    @abstractmethod
    def is_active(self) -> bool:
        """False once the session has been stopped or destroyed."""

    @abstractmethod
    def current_track(self) -> Optional[Track]:
        """The playing track, or the last one played when the queue just ran out."""

    @abstractmethod
    def queue_length(self) -> int:
        """Number of tracks waiting after the current one."""

    @abstractmethod
    def enqueue(self, track: Track) -> None:
        """Append a track to the session queue."""


class InMemoryPlaybackSession(PlaybackSession):
    """Plain in-process session, used by the demo entry point and tests."""

    def __init__(self, session_id: str, autoplay_enabled: bool = True):
        self._session_id = session_id
        self._autoplay_enabled = autoplay_enabled
        self._active = True
        self._current: Optional[Track] = None
        self.queue: List[Track] = []

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def autoplay_enabled(self) -> bool:
        return self._autoplay_enabled

    def set_autoplay(self, enabled: bool) -> None:
        self._autoplay_enabled = enabled

    def is_active(self) -> bool:
        return self._active

    def stop(self) -> None:
        self._active = False
        self.queue.clear()

    def current_track(self) -> Optional[Track]:
        return self._current

    def queue_length(self) -> int:
        return len(self.queue)

    def enqueue(self, track: Track) -> None:
        self.queue.append(track)

    def play(self, track: Track) -> None:
        """Mark ``track`` as now playing."""
        self._current = track

    def advance(self) -> Optional[Track]:
        """Move to the next queued track; the last track stays current when the queue is empty."""
        if self.queue:
            self._current = self.queue.pop(0)
            return self._current
        return None
