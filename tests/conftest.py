"""
Shared test fixtures for the Encore engine.
"""

import asyncio
from unittest.mock import MagicMock, Mock

import pytest

from encore.models.track_models import Backend, Candidate, Requester


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_candidate(
    title: str,
    author: str = "",
    duration_ms: int = 200000,
    backend: Backend = Backend.SOUNDCLOUD,
    uri: str = None
) -> Candidate:
    """Build a candidate with a unique default URI."""
    return Candidate(
        title=title,
        author=author,
        uri=uri or f"https://{backend.value}.example/{abs(hash((title, author))) % 10 ** 8}",
        duration_ms=duration_ms,
        backend=backend,
    )


def timing_out_session() -> Mock:
    """aiohttp session stand-in whose requests never answer in time."""
    context = MagicMock()
    context.__aenter__.side_effect = asyncio.TimeoutError
    session = Mock()
    session.closed = False
    session.post = Mock(return_value=context)
    session.get = Mock(return_value=context)
    return session


@pytest.fixture
def clock():
    """Fake clock starting at t=1000s"""
    return FakeClock()


@pytest.fixture
def requester():
    """A regular user requester"""
    return Requester(id="user-1", display_name="Listener")
