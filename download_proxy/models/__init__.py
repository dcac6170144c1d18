from .internal import MediaKind, MediaMetadata, ResolvedURL, StreamFilter, StreamRequest
from .request import DownloadRequest
from .response import MediaInfo

__all__ = [
    "DownloadRequest",
    "MediaInfo",
    "MediaKind",
    "MediaMetadata",
    "ResolvedURL",
    "StreamFilter",
    "StreamRequest",
]
