from .errors import (
    DownloadProxyError,
    InvalidURLError,
    MidStreamError,
    UpstreamResolutionError,
    UpstreamStreamError,
)

__all__ = [
    "DownloadProxyError",
    "InvalidURLError",
    "MidStreamError",
    "UpstreamResolutionError",
    "UpstreamStreamError",
]
