"""
Encore Exceptions

Error taxonomy shared by the resolution and autoplay components.

Per-attempt failures (one backend, one provider) are raised with these types
at the point of occurrence and turned into "try the next option" by the
component that owns the fallback chain. Only configuration and programmer
errors are expected to escape the engine.
"""

from typing import Optional


class EncoreError(Exception):
    """Base class for all engine errors."""


class ConfigurationError(EncoreError):
    """Raised when the engine is wired with missing or invalid settings."""


class NoCandidatesFound(EncoreError):
    """No backend produced a candidate for a track descriptor."""

    def __init__(self, query: str):
        super().__init__(f"No candidates found for '{query}'")
        self.query = query


class BackendUnavailable(EncoreError):
    """A single search backend failed to answer."""

    def __init__(self, backend: str, message: str):
        super().__init__(f"{backend} backend unavailable: {message}")
        self.backend = backend


class AllBackendsFailed(EncoreError):
    """Every backend tried for a query raised an error."""

    def __init__(self, query: str, backends):
        super().__init__(f"All backends failed for '{query}': {', '.join(backends)}")
        self.query = query
        self.backends = list(backends)


class ResolutionTimeout(EncoreError):
    """An upstream call exceeded its time budget."""

    def __init__(self, operation: str, timeout: float):
        super().__init__(f"{operation} timed out after {timeout:.1f}s")
        self.operation = operation
        self.timeout = timeout


class ProviderError(EncoreError):
    """A recommendation provider attempt failed."""

    def __init__(self, provider: str, message: str):
        super().__init__(f"{provider}: {message}")
        self.provider = provider


class ProviderRateLimited(ProviderError):
    """
    The provider refused the call because of rate limiting.

    Raised both for local limiter rejections and for upstream 429 answers.
    It never counts as a circuit breaker failure.
    """

    def __init__(self, provider: str, retry_after: Optional[float] = None, message: str = "rate limited"):
        super().__init__(provider, message)
        self.retry_after = retry_after


class ProviderCircuitOpen(ProviderError):
    """The provider's circuit breaker is open; the attempt was skipped."""

    def __init__(self, provider: str, reopen_in: float):
        super().__init__(provider, f"circuit open, retry in {reopen_in:.0f}s")
        self.reopen_in = reopen_in


class InvalidProviderResponse(ProviderError):
    """The provider answered with something that is not a usable recommendation list."""


class AllProvidersFailed(EncoreError):
    """Every configured provider was skipped or failed."""

    def __init__(self, attempts):
        summary = "; ".join(f"{name}: {reason}" for name, reason in attempts) or "no providers configured"
        super().__init__(f"All recommendation providers failed ({summary})")
        self.attempts = list(attempts)
