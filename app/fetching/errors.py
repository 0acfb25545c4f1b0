"""
Error taxonomy for upstream fetches and cache persistence.
"""

from __future__ import annotations


class FetchError(Exception):
    """
    Base class for failures raised by an upstream fetch function.
    """

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RateLimitedError(FetchError):
    """
    Upstream throttled the request (HTTP 429). Retryable with backoff.
    """

    def __init__(self, message: str = "Rate limited (HTTP 429)", *, status_code: int | None = 429) -> None:
        super().__init__(message, status_code=status_code)


class PermanentFetchError(FetchError):
    """
    Non-retryable failure: validation errors, 4xx other than 429, unsuccessful bodies.
    """


class UpstreamError(FetchError):
    """
    Upstream unavailable (5xx, timeout, connection failure). Not retried by the cache layer.
    """


class StorageError(Exception):
    """
    Raised when the resource cache cannot be read or written.
    """


class ConfigurationError(RuntimeError):
    """
    Raised at construction time when a required credential is missing.
    """
