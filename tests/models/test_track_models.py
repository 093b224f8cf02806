"""
Tests for the track data model
"""

from encore.models.track_models import (
    Backend,
    Candidate,
    CanonicalTrackDescriptor,
    HistoryEntry,
    RecommendationDescriptor,
    RecommendationOptions,
    ResolutionResult,
    ResolutionType,
    Track,
)
from tests.conftest import make_candidate


class TestCanonicalTrackDescriptor:
    """Descriptor normalisation and artist helpers"""

    def test_fields_are_sanitised(self):
        descriptor = CanonicalTrackDescriptor(artist="  Artist\x00  A ", title="Song\n X")

        assert descriptor.artist == "Artist A"
        assert descriptor.title == "Song X"

    def test_non_positive_duration_is_unknown(self):
        assert CanonicalTrackDescriptor("A", "T", duration_ms=0).duration_ms is None
        assert CanonicalTrackDescriptor("A", "T", duration_ms=-5).duration_ms is None

    def test_artist_helpers(self):
        descriptor = CanonicalTrackDescriptor(artist="Singer, Composer & Band", title="Theme")

        assert descriptor.first_artist == "Singer"
        assert descriptor.second_artist == "Composer"
        assert descriptor.artist_aliases == ["singer", "composer", "band"]

    def test_ampersand_separates_artists(self):
        descriptor = CanonicalTrackDescriptor(artist="Artist A & Artist B", title="Song X")

        assert descriptor.first_artist == "Artist A"
        assert descriptor.second_artist == "Artist B"

    def test_single_artist_has_no_second(self):
        assert CanonicalTrackDescriptor(artist="Solo", title="T").second_artist is None

    def test_completeness(self):
        assert CanonicalTrackDescriptor("A", "T").is_complete
        assert not CanonicalTrackDescriptor("", "T").is_complete
        assert not CanonicalTrackDescriptor("A", "   ").is_complete

    def test_search_query(self):
        assert CanonicalTrackDescriptor("Artist A", "Song X").search_query == "Artist A Song X"


class TestCandidate:
    """Audio node track conversion"""

    def test_from_lavalink(self):
        candidate = Candidate.from_lavalink({
            "encoded": "QAAA",
            "info": {
                "identifier": "dQw4w9WgXcQ",
                "title": "Song",
                "author": "Artist",
                "length": 212000,
                "uri": "https://www.youtube.com/watch?v=dQw4w9WgXcQ",
                "sourceName": "youtube",
                "artworkUrl": "https://i.ytimg.com/x.jpg",
                "isrc": None,
            },
        })

        assert candidate.backend == Backend.YOUTUBE
        assert candidate.duration_ms == 212000
        assert candidate.encoded == "QAAA"
        assert candidate.thumbnail == "https://i.ytimg.com/x.jpg"

    def test_missing_info_fields(self):
        candidate = Candidate.from_lavalink({"info": {"title": None}})

        assert candidate.title == ""
        assert candidate.duration_ms == 0
        assert candidate.backend == Backend.OTHER

    def test_backend_from_source_name(self):
        assert Backend.from_source_name("youtubemusic") == Backend.YOUTUBE
        assert Backend.from_source_name("soundcloud") == Backend.SOUNDCLOUD
        assert Backend.from_source_name(None) == Backend.OTHER
        assert Backend.SOUNDCLOUD.search_prefix == "scsearch:"
        assert Backend.OTHER.search_prefix is None


class TestTrack:
    """Resolved tracks"""

    def test_descriptor_prefers_canonical(self, requester):
        canonical = CanonicalTrackDescriptor("Artist A", "Song X")
        track = Track(make_candidate("Artist A - Song X (Official)", author="Uploader"), requester, canonical)

        assert track.to_descriptor() == canonical

    def test_descriptor_from_candidate(self, requester):
        track = Track(make_candidate("Song", author="Uploader", duration_ms=0), requester)

        descriptor = track.to_descriptor()
        assert (descriptor.artist, descriptor.title, descriptor.duration_ms) == ("Uploader", "Song", None)

    def test_history_entry_from_track(self, requester):
        track = Track(make_candidate("Song"), requester, CanonicalTrackDescriptor("Artist", "Song"))

        assert HistoryEntry.from_track(track) == HistoryEntry("Song", "Artist")


class TestResultsAndRecommendations:
    """Small value types"""

    def test_empty_result(self):
        result = ResolutionResult.empty("nothing")

        assert result.type == ResolutionType.SINGLE
        assert not result.found
        assert result.failure_reason == "nothing"

    def test_history_entry_matching_ignores_case_and_spacing(self):
        assert HistoryEntry("Song  A", "Artist").same_track(HistoryEntry("song a", "ARTIST"))
        assert not HistoryEntry("Song A", "Artist").same_track(HistoryEntry("Song A", "Other"))

    def test_recommendation_query_and_defaults(self):
        recommendation = RecommendationDescriptor(title="Song", artist="Artist")

        assert recommendation.query == "Artist Song"
        assert recommendation.reason == "Similar musical style"
        assert recommendation.similarity == 0.8

    def test_options_cache_fields(self):
        assert RecommendationOptions(count=3, mood="calm").cache_fields() == (3, None, "calm", None)
