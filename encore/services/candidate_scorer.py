"""
Candidate Scorer

Ranks backend search results against a canonical track descriptor and picks
the one most likely to be the original recording (not a remix, cover or
sped-up edit). Pure and deterministic: no I/O, and a stable sort keeps
equal scores in input order.
"""

import re
from typing import FrozenSet, Iterable, List, Optional, Sequence

import structlog

from ..models.track_models import Backend, Candidate, CanonicalTrackDescriptor, ScoredCandidate
from ..utils.text_utils import clean_title, format_duration, split_artists, tokenize_title

logger = structlog.get_logger(__name__)

BASE_SCORE = 100
PENALIZED_BACKEND_PENALTY = 30
EXCLUDE_PATTERN_PENALTY = 60
EXTRA_WORD_PENALTY = 10
EXTRA_EXCLUDED_WORD_PENALTY = 40
TITLE_MATCH_BONUS = 20
SHORT_ALIAS_BONUS = 20
LONG_ALIAS_BONUS = 45
SHORT_ALIAS_LENGTH = 6
UNKNOWN_AUTHOR_PENALTY = 25
SOUNDTRACK_BONUS = 35
DURATION_SANITY_PENALTY = 20
MIN_SANE_DURATION_MS = 60_000
MAX_SANE_DURATION_MS = 600_000

# (max difference in ms, score delta); differences between 30s and 45s are neutral
DURATION_BANDS = ((5_000, 40), (15_000, 25), (30_000, 5))
DURATION_MISMATCH_MS = 45_000
DURATION_MISMATCH_PENALTY = 30

CLEAN_THRESHOLD = 40
ALTERNATE_THRESHOLD = 20

EXCLUDE_PATTERNS = tuple(re.compile(pattern, re.IGNORECASE) for pattern in (
    r"\bslowed\b", r"\breverb\b", r"\bremix\b", r"\bcover\b",
    r"\bbootleg\b", r"\bedit\b", r"\bspeed\s*up\b", r"\bsped\s*up\b", r"\b8d\b",
    r"\bbass\s*boost", r"\bnightcore\b", r"\bflipped\b",
    r"\blofi\b", r"\blo-fi\b", r"\blo fi\b",
    r"\bmashup\b", r"\bmash-up\b", r"\bmix\b",
    r"\blyrics?\b", r"\bkaraoke\b", r"\binstrumental\b",
    r"\bacoustic\b", r"\bunplugged\b", r"\blive\b",
    r"\bextended\b", r"\bshort\b", r"\bfull\s*version\b",
    r"\bslomo\b", r"\bslow\s*motion\b", r"\bpitched\b",
    r"\bchill\b", r"\btrap\b", r"\bbeats?\b",
))

# Never counted as extraneous
NEUTRAL_WORDS = frozenset({"the", "and", "mp3", "wav", "flac", "official", "audio", "video", "full", "hd", "hq"})

SOUNDTRACK_MARKERS = tuple(re.compile(pattern, re.IGNORECASE) for pattern in (
    r"\bfrom\b", r"\bost\b", r"\bsoundtrack\b", r"\bmovie\b", r"\bfilm\b", r"\bmotion picture\b",
))

TRUSTED_AUTHOR_MARKERS = ("topic", "official")

DEFAULT_PENALIZED_BACKENDS: FrozenSet[Backend] = frozenset({Backend.YOUTUBE})


def count_exclude_matches(text: str) -> int:
    """Number of exclude-lexicon patterns found in ``text``."""
    return sum(1 for pattern in EXCLUDE_PATTERNS if pattern.search(text))


def is_excluded_word(word: str) -> bool:
    return any(pattern.search(word) for pattern in EXCLUDE_PATTERNS)


def duration_delta(canonical_ms: Optional[int], candidate_ms: Optional[int]) -> int:
    """
    Score change for duration proximity.

    Zero when either duration is unknown. Smaller differences never score
    lower than larger ones.
    """
    if not canonical_ms or not candidate_ms:
        return 0

    diff = abs(candidate_ms - canonical_ms)
    for limit, delta in DURATION_BANDS:
        if diff < limit:
            return delta
    if diff > DURATION_MISMATCH_MS:
        return -DURATION_MISMATCH_PENALTY
    return 0


def score_candidate(
    canonical: CanonicalTrackDescriptor,
    candidate: Candidate,
    penalized_backends: Iterable[Backend] = DEFAULT_PENALIZED_BACKENDS
) -> ScoredCandidate:
    """
    Score one candidate against the canonical descriptor.

    Args:
        canonical: Ground-truth artist, title and optional duration
        candidate: Backend search result
        penalized_backends: Backends that take the reliability penalty

    Returns:
        The candidate with its score and exclude-pattern match count
    """
    title = candidate.title.lower()
    author = candidate.author.lower()
    canonical_title = canonical.title.lower()
    score = BASE_SCORE

    if candidate.backend in penalized_backends:
        score -= PENALIZED_BACKEND_PENALTY

    exclude_matches = count_exclude_matches(title)
    score -= EXCLUDE_PATTERN_PENALTY * exclude_matches

    reference_words = [w for w in canonical_title.split() if len(w) > 2]
    reference_words += [w for w in canonical.first_artist.lower().split() if len(w) > 2]
    for word in tokenize_title(title):
        if word in NEUTRAL_WORDS:
            continue
        if any(word in ref or ref in word for ref in reference_words):
            continue
        score -= EXTRA_EXCLUDED_WORD_PENALTY if is_excluded_word(word) else EXTRA_WORD_PENALTY

    normalized = clean_title(candidate.title)
    if canonical_title and (normalized == canonical_title or canonical_title in normalized):
        score += TITLE_MATCH_BONUS

    aliases = split_artists(canonical.artist, min_length=2)
    artist_bonus = 0
    for alias in aliases:
        if alias in title or alias in author:
            artist_bonus += SHORT_ALIAS_BONUS if len(alias) < SHORT_ALIAS_LENGTH else LONG_ALIAS_BONUS
    score += artist_bonus

    for marker in SOUNDTRACK_MARKERS:
        if marker.search(title) and not marker.search(canonical_title):
            score += SOUNDTRACK_BONUS
            break

    unknown_author = (
        bool(author)
        and not any(alias in author for alias in aliases)
        and not any(marker in author for marker in TRUSTED_AUTHOR_MARKERS)
    )
    if unknown_author and artist_bonus == 0:
        score -= UNKNOWN_AUTHOR_PENALTY

    if canonical.duration_ms:
        score += duration_delta(canonical.duration_ms, candidate.duration_ms)
    elif candidate.duration_ms and not (MIN_SANE_DURATION_MS <= candidate.duration_ms <= MAX_SANE_DURATION_MS):
        # only without a reference duration, so proximity stays monotonic
        score -= DURATION_SANITY_PENALTY

    return ScoredCandidate(candidate=candidate, score=score, exclude_match_count=exclude_matches)


def score_candidates(
    canonical: CanonicalTrackDescriptor,
    candidates: Sequence[Candidate],
    penalized_backends: Iterable[Backend] = DEFAULT_PENALIZED_BACKENDS
) -> List[ScoredCandidate]:
    """Score every candidate and sort by score, highest first."""
    penalized = frozenset(penalized_backends)
    scored = [score_candidate(canonical, candidate, penalized) for candidate in candidates]
    return sorted(scored, key=lambda item: item.score, reverse=True)


def select_best(
    scored: Sequence[ScoredCandidate],
    penalized_backends: Iterable[Backend] = DEFAULT_PENALIZED_BACKENDS
) -> Optional[ScoredCandidate]:
    """
    Apply the selection policy to a list sorted by ``score_candidates``.

    1. The best clean candidate, if it scores at least 40.
    2. If every primary-backend candidate is tainted, the best clean
       penalized-backend candidate scoring at least 20.
    3. The best candidate overall.
    4. ``None`` for an empty list.
    """
    if not scored:
        return None

    penalized = frozenset(penalized_backends)
    clean = [item for item in scored if item.is_clean]
    if clean and clean[0].score >= CLEAN_THRESHOLD:
        return clean[0]

    primary = [item for item in scored if item.candidate.backend not in penalized]
    alternate_clean = [item for item in clean if item.candidate.backend in penalized]
    if all(not item.is_clean for item in primary) and alternate_clean:
        if alternate_clean[0].score >= ALTERNATE_THRESHOLD:
            return alternate_clean[0]

    return scored[0]


class CandidateScorer:
    """Scorer bound to one set of penalized backends."""

    def __init__(self, penalized_backends: Iterable[Backend] = DEFAULT_PENALIZED_BACKENDS):
        self.penalized_backends = frozenset(penalized_backends)
        self.logger = logger.bind(service="CandidateScorer")

    def score(
        self,
        canonical: CanonicalTrackDescriptor,
        candidates: Sequence[Candidate]
    ) -> List[ScoredCandidate]:
        return score_candidates(canonical, candidates, self.penalized_backends)

    def pick(
        self,
        canonical: CanonicalTrackDescriptor,
        candidates: Sequence[Candidate]
    ) -> Optional[Candidate]:
        """Score ``candidates`` and return the selected one, or ``None``."""
        scored = self.score(canonical, candidates)
        best = select_best(scored, self.penalized_backends)

        self.logger.debug(
            "Candidates scored",
            track=f"{canonical.artist} - {canonical.title}",
            duration=format_duration(canonical.duration_ms),
            top=[
                f"[{item.score}] [{item.candidate.backend.value}] {item.candidate.title}"
                for item in scored[:5]
            ],
            selected=best.candidate.title if best else None,
            tainted=bool(best and not best.is_clean)
        )
        return best.candidate if best else None
