"""
Exception hierarchy for the download proxy.

Errors raised before any response header is committed are converted to
plain-text HTTP responses by the endpoints. Errors raised after that point
can only abort the connection.
"""


class DownloadProxyError(Exception):
    """Base exception for all application-specific errors."""


class InvalidURLError(DownloadProxyError):
    """Raised when a source URL is missing or not a recognised platform URL."""


class UpstreamResolutionError(DownloadProxyError):
    """Raised when the extraction service cannot produce metadata or a stream for a URL."""

    def __init__(self, message: str, timed_out: bool = False):
        super().__init__(message)
        self.timed_out = timed_out


class UpstreamStreamError(DownloadProxyError):
    """Raised by an upstream stream when the extraction process fails."""


class MidStreamError(DownloadProxyError):
    """Raised into the response body when the upstream fails after headers were sent."""


class RateLimitExceededError(DownloadProxyError):
    """Raised when a client exceeds its request quota; carries the Retry-After delay."""

    def __init__(self, message: str, retry_after: int):
        super().__init__(message)
        self.retry_after = retry_after
