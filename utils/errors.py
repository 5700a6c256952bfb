"""
Exception hierarchy for upstream fetch failures.

Every message is prefixed with the ``[label]`` of the resource being fetched
(e.g. ``[pokedex]``, ``[species]``) so a failure in the logs names the
upstream resource that caused it.
"""

from typing import Optional


class FetchError(Exception):
    """Base class for failures talking to the upstream API."""

    def __init__(self, label: str, message: str):
        self.label = label
        super().__init__(f"[{label}] {message}")


class TransientFetchError(FetchError):
    """Retryable upstream failure (HTTP 429 or 5xx)."""

    def __init__(self, label: str, status: int, reason: Optional[str] = None):
        self.status = status
        super().__init__(label, f"HTTP {status} {reason or ''}".rstrip())


class UpstreamHTTPError(FetchError):
    """Terminal upstream failure: a non-retryable HTTP status."""

    def __init__(self, label: str, status: int, reason: Optional[str] = None):
        self.status = status
        super().__init__(label, f"HTTP {status} {reason or ''}".rstrip())


class MalformedResponseError(FetchError):
    """Upstream answered 2xx but the body was not valid JSON."""
