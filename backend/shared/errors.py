"""
Error taxonomy for upstream access.

Retryable:      NetworkError, RateLimited, ServerError
Not retryable:  ClientError (incl. NotFound), ParseError

A cache miss is not an error; cache lookups return None.
"""
from __future__ import annotations

from typing import Optional


class SyncError(Exception):
    """Base class for all sync engine errors."""

    retryable: bool = False


class UpstreamError(SyncError):
    """An upstream request failed."""

    def __init__(self, message: str, url: str = "") -> None:
        self.url = url
        super().__init__(f"{message} (url={url})" if url else message)


class NetworkError(UpstreamError):
    """Timeout or connection failure."""

    retryable = True

    def __init__(self, message: str, url: str = "", timeout: bool = False) -> None:
        self.timeout = timeout
        super().__init__(message, url)


class RateLimited(UpstreamError):
    """HTTP 429. Retried with an extended backoff."""

    retryable = True

    def __init__(self, url: str = "", retry_after: Optional[float] = None) -> None:
        self.status = 429
        self.retry_after = retry_after
        super().__init__("Upstream rate limit hit (429)", url)


class ServerError(UpstreamError):
    """HTTP 5xx."""

    retryable = True

    def __init__(self, status: int, url: str = "", retry_after: Optional[float] = None) -> None:
        self.status = status
        self.retry_after = retry_after
        super().__init__(f"Upstream server error {status}", url)


class ClientError(UpstreamError):
    """HTTP 4xx other than 429."""

    def __init__(self, status: int, url: str = "") -> None:
        self.status = status
        super().__init__(f"Upstream client error {status}", url)


class NotFound(ClientError):
    def __init__(self, url: str = "") -> None:
        super().__init__(404, url)


class ParseError(UpstreamError):
    """Payload was empty, not JSON, or did not match the expected shape."""


class ScopeUnavailable(SyncError):
    """No fresh or cached data could be produced for a requested scope."""

    def __init__(self, scope: str, causes: Optional[list[Exception]] = None) -> None:
        self.scope = scope
        self.causes = causes or []
        detail = "; ".join(str(c) for c in self.causes[:3])
        super().__init__(f"No data available for {scope}" + (f": {detail}" if detail else ""))
