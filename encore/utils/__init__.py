"""
Utilities Module

Logging setup and text helpers.
"""

from .logging_config import (
    EncoreLogger,
    setup_logging,
    get_logger,
    log_performance,
    set_session_context,
)
from .text_utils import (
    sanitize_string,
    normalize_title,
    clean_title,
    split_artists,
    tokenize_title,
    format_duration,
)

__all__ = [
    "EncoreLogger",
    "setup_logging",
    "get_logger",
    "log_performance",
    "set_session_context",
    "sanitize_string",
    "normalize_title",
    "clean_title",
    "split_artists",
    "tokenize_title",
    "format_duration",
]
