"""
Autoplay Continuity Manager

Keeps a session playing once its queue runs dry. On a trigger it asks the
recommendation gateway for tracks similar to the current one, drops
recently played titles, resolves the survivors in order and enqueues the
first playable one. If recommendations are unavailable it falls back to an
artist search, then to a generic popular-music search.

Triggers are guarded twice per session: a phase flag rejects a trigger
while a decision is in flight, and a debounce window rejects triggers that
arrive too soon after the previous one. Nothing raised while deciding ever
reaches the playback layer.
"""

import random
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Set

import structlog

from ..exceptions import EncoreError
from ..models.track_models import (
    AUTOPLAY_REQUESTER,
    Candidate,
    CanonicalTrackDescriptor,
    HistoryEntry,
    RecommendationOptions,
    Track,
)
from ..utils.text_utils import normalize_title
from .playback_session import PlaybackSession
from .recommendation_gateway import RecommendationProviderGateway
from .search_gateway import BackendSearchGateway
from .track_resolver import TrackResolver

logger = structlog.get_logger(__name__)

RECOMMENDATION_COUNT = 3
PROMPT_HISTORY_SIZE = 5
DUPLICATE_WINDOW = 10
MAX_RESOLUTION_ATTEMPTS = 3
POPULAR_PICK_RANGE = 5
POPULAR_QUERIES = ("top hits 2024", "popular songs", "trending music")


class AutoplayPhase(Enum):
    """What a session's autoplay is doing right now."""
    IDLE = "idle"
    DECIDING = "deciding"
    RESOLVING = "resolving"


@dataclass
class AutoplaySessionState:
    """
    Autoplay memory for one session.

    ``history`` holds previously played and autoplay-enqueued tracks, oldest
    first. The track playing when a decision starts is kept in
    ``now_playing`` rather than in ``history``.
    """
    session_id: str
    history: List[HistoryEntry] = field(default_factory=list)
    now_playing: Optional[HistoryEntry] = None
    last_trigger_at: Optional[float] = None
    phase: AutoplayPhase = AutoplayPhase.IDLE
    history_limit: int = 50
    history_keep: int = 30

    def remember(self, entry: HistoryEntry) -> None:
        """Append to history, trimming to the newest ``history_keep`` entries past the limit."""
        self.history.append(entry)
        if len(self.history) > self.history_limit:
            self.history = self.history[-self.history_keep:]

    def begin_decision(self, current: HistoryEntry) -> None:
        """Move the previous now-playing track into history and take ``current`` out of it."""
        if self.now_playing is not None and not self.now_playing.same_track(current):
            self.remember(self.now_playing)
        self.history = [entry for entry in self.history if not entry.same_track(current)]
        self.now_playing = current

    def recent(self, count: int) -> List[HistoryEntry]:
        return self.history[-count:] if count > 0 else []

    def recent_titles(self, count: int) -> Set[str]:
        return {entry.normalized_title for entry in self.recent(count)}


@dataclass(frozen=True)
class AutoplayDecision:
    """A track enqueued by autoplay and why."""
    track: Track
    tier: str
    reason: str


class AutoplayContinuityManager:
    """Per-session autoplay decisions."""

    def __init__(
        self,
        gateway: RecommendationProviderGateway,
        resolver: TrackResolver,
        search: BackendSearchGateway,
        debounce_seconds: float = 5.0,
        history_limit: int = 50,
        history_keep: int = 30,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Initialize the manager.

        Args:
            gateway: Recommendation provider gateway
            resolver: Track resolver used for recommended tracks
            search: Backend search gateway used by the fallback tiers
            debounce_seconds: Minimum time between two triggers of one session
            history_limit: History size that triggers trimming
            history_keep: History size after trimming
            rng: Random source for the generic fallback (seed it for reproducible runs)
            clock: Monotonic time source
        """
        self.gateway = gateway
        self.resolver = resolver
        self.search = search
        self.debounce_seconds = debounce_seconds
        self.history_limit = history_limit
        self.history_keep = history_keep
        self.rng = rng or random.Random()
        self._clock = clock
        self._states: Dict[str, AutoplaySessionState] = {}
        self.logger = logger.bind(service="AutoplayManager")

    def state_for(self, session_id: str) -> AutoplaySessionState:
        if session_id not in self._states:
            self._states[session_id] = AutoplaySessionState(
                session_id=session_id,
                history_limit=self.history_limit,
                history_keep=self.history_keep,
            )
        return self._states[session_id]

    def forget(self, session_id: str) -> None:
        """Drop all autoplay state of a destroyed session."""
        self._states.pop(session_id, None)

    async def on_track_start(self, session: PlaybackSession, track: Track) -> Optional[AutoplayDecision]:
        """Proactive trigger: top up the queue while the last queued tracks play."""
        if not session.autoplay_enabled or session.queue_length() > 1:
            return None
        return await self.trigger(session, track, cause="track_start")

    async def on_queue_empty(self, session: PlaybackSession) -> Optional[AutoplayDecision]:
        """Reactive trigger: the queue ran out."""
        if not session.autoplay_enabled:
            return None
        current = session.current_track()
        if current is None:
            self.logger.debug("Queue empty without a last track", session_id=session.session_id)
            return None
        return await self.trigger(session, current, cause="queue_empty")

    async def trigger(
        self,
        session: PlaybackSession,
        seed: Optional[Track] = None,
        cause: str = "manual"
    ) -> Optional[AutoplayDecision]:
        """
        Run one continuation decision for ``session``.

        Returns:
            The decision when a track was enqueued, otherwise ``None``
        """
        state = self.state_for(session.session_id)
        now = self._clock()

        if state.phase is not AutoplayPhase.IDLE:
            self.logger.debug("Trigger dropped, decision in flight", session_id=session.session_id, cause=cause)
            return None
        if state.last_trigger_at is not None and now - state.last_trigger_at < self.debounce_seconds:
            self.logger.debug("Trigger debounced", session_id=session.session_id, cause=cause)
            return None

        state.last_trigger_at = now
        state.phase = AutoplayPhase.DECIDING
        try:
            return await self._continue_playback(session, state, seed or session.current_track())
        except Exception as e:
            self.logger.error(
                "Autoplay decision failed",
                session_id=session.session_id,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True
            )
            return None
        finally:
            state.phase = AutoplayPhase.IDLE

    async def _continue_playback(
        self,
        session: PlaybackSession,
        state: AutoplaySessionState,
        current: Optional[Track]
    ) -> Optional[AutoplayDecision]:
        if current is None:
            return None

        seed = current.to_descriptor()
        state.begin_decision(HistoryEntry(title=seed.title, artist=seed.artist))

        recommendations = await self.gateway.get_recommendations(
            seed,
            state.recent(PROMPT_HISTORY_SIZE),
            RecommendationOptions(count=RECOMMENDATION_COUNT)
        )

        excluded = state.recent_titles(DUPLICATE_WINDOW)
        excluded.update({normalize_title(seed.title), normalize_title(current.title)})
        fresh = [rec for rec in recommendations if normalize_title(rec.title) not in excluded]
        if len(fresh) < len(recommendations):
            self.logger.debug(
                "Recent tracks filtered from recommendations",
                session_id=session.session_id,
                removed=len(recommendations) - len(fresh)
            )

        state.phase = AutoplayPhase.RESOLVING
        for rec in fresh[:MAX_RESOLUTION_ATTEMPTS]:
            try:
                track = await self.resolver.resolve_descriptor(
                    CanonicalTrackDescriptor(artist=rec.artist, title=rec.title, source_hint=rec.source),
                    AUTOPLAY_REQUESTER
                )
            except EncoreError as e:
                self.logger.info("Recommendation not resolvable", title=rec.title, artist=rec.artist, error=str(e))
                continue
            return self._commit(session, state, track, tier="recommendation", reason=rec.reason)

        track = await self._artist_fallback(seed, excluded)
        if track is not None:
            return self._commit(session, state, track, tier="artist", reason=f"More from {seed.artist}")

        track = await self._popular_fallback()
        if track is not None:
            return self._commit(session, state, track, tier="popular", reason="Popular right now")

        self.logger.warning("Autoplay found nothing to play", session_id=session.session_id, seed=seed.title)
        return None

    async def _artist_fallback(self, seed: CanonicalTrackDescriptor, excluded: Set[str]) -> Optional[Track]:
        hits = await self._search_quietly(f"{seed.artist} popular")
        if not hits:
            return None
        pick = next((hit for hit in hits if normalize_title(hit.title) not in excluded), hits[0])
        return Track(pick, AUTOPLAY_REQUESTER)

    async def _popular_fallback(self) -> Optional[Track]:
        hits = await self._search_quietly(self.rng.choice(POPULAR_QUERIES))
        if not hits:
            return None
        return Track(self.rng.choice(hits[:POPULAR_PICK_RANGE]), AUTOPLAY_REQUESTER)

    async def _search_quietly(self, query: str) -> List[Candidate]:
        try:
            return await self.search.search(query)
        except EncoreError as e:
            self.logger.info("Fallback search failed", query=query, error=str(e))
            return []

    def _commit(
        self,
        session: PlaybackSession,
        state: AutoplaySessionState,
        track: Track,
        tier: str,
        reason: str
    ) -> Optional[AutoplayDecision]:
        if not session.is_active():
            self.logger.info("Session ended during decision, result discarded", session_id=session.session_id)
            return None

        session.enqueue(track)
        state.remember(HistoryEntry.from_track(track))
        self.logger.info(
            "Autoplay track added",
            session_id=session.session_id,
            tier=tier,
            title=track.title,
            author=track.author,
            reason=reason
        )
        return AutoplayDecision(track=track, tier=tier, reason=reason)

    def get_stats(self) -> Dict[str, dict]:
        return {
            session_id: {
                "phase": state.phase.value,
                "history_size": len(state.history),
                "now_playing": state.now_playing.title if state.now_playing else None,
            }
            for session_id, state in self._states.items()
        }
