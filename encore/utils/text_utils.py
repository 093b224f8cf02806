"""
Text Utilities

Small string helpers shared by the resolver, scorer and autoplay manager:
title normalisation, artist splitting, metadata sanitising and duration
formatting.
"""

import re
from typing import List, Optional

MAX_FIELD_LENGTH = 256

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
_WHITESPACE = re.compile(r"\s+")
_ARTIST_SEPARATORS = re.compile(r"[,&]")
_TITLE_DELIMITERS = re.compile(r"[\s\-_.,|()\[\]]+")
_AUDIO_EXTENSION = re.compile(r"\.(mp3|wav|flac|m4a|ogg)$")


def sanitize_string(value: Optional[str], max_length: int = MAX_FIELD_LENGTH) -> str:
    """
    Clean a metadata string coming from an upstream API.

    Control characters are removed, whitespace runs collapse to a single
    space and the result is truncated to ``max_length``.

    Args:
        value: Raw string (``None`` becomes an empty string)
        max_length: Maximum length of the returned string

    Returns:
        Sanitised string
    """
    if not value:
        return ""
    cleaned = _CONTROL_CHARS.sub("", str(value))
    cleaned = _WHITESPACE.sub(" ", cleaned).strip()
    return cleaned[:max_length]


def normalize_title(title: Optional[str]) -> str:
    """Lower-case a title and collapse its whitespace for equality checks."""
    if not title:
        return ""
    return _WHITESPACE.sub(" ", title.lower()).strip()


def clean_title(title: str) -> str:
    """Lower-case a title, fold separators to spaces and drop an audio file extension."""
    cleaned = re.sub(r"[\s\-_]+", " ", title.lower()).strip()
    return _AUDIO_EXTENSION.sub("", cleaned)


def split_artists(artist: Optional[str], min_length: int = 0) -> List[str]:
    """
    Split a combined artist string on commas and ampersands.

    Args:
        artist: Artist string such as ``"A, B & C"``
        min_length: Aliases not longer than this are dropped

    Returns:
        Lower-cased, stripped aliases in their original order
    """
    aliases = [name.lower() for name in split_artist_names(artist)]
    return [alias for alias in aliases if len(alias) > min_length]


def split_artist_names(artist: Optional[str]) -> List[str]:
    """Split a combined artist string on commas and ampersands, keeping case."""
    if not artist:
        return []
    names = [part.strip() for part in _ARTIST_SEPARATORS.split(artist)]
    return [name for name in names if name]


def tokenize_title(title: str, min_length: int = 2) -> List[str]:
    """Split a lower-cased title on common delimiters, keeping tokens longer than ``min_length``."""
    return [token for token in _TITLE_DELIMITERS.split(title.lower()) if len(token) > min_length]


def format_duration(duration_ms: Optional[int]) -> str:
    """Format milliseconds as ``m:ss`` (or ``h:mm:ss``)."""
    if not duration_ms or duration_ms < 0:
        return "0:00"
    total_seconds = int(duration_ms // 1000)
    hours, remainder = divmod(total_seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{seconds:02d}"
    return f"{minutes}:{seconds:02d}"
