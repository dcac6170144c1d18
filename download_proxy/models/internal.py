from enum import Enum
from typing import List

from pydantic import BaseModel


class MediaKind(str, Enum):
    """What the client asked for"""
    VIDEO = "video"
    AUDIO = "audio"


class StreamFilter(str, Enum):
    """Variant filter understood by the extraction service"""
    AUDIO_AND_VIDEO = "audioandvideo"
    AUDIO_ONLY = "audioonly"


class StreamRequest(BaseModel):
    """Variant request forwarded to the extraction service (separated from HTTP concerns)"""
    filter: StreamFilter
    quality: str


class ResolvedURL(BaseModel):
    """Canonical URL handle produced by the resolver"""
    url: str
    video_id: str


class MediaMetadata(BaseModel):
    """Display metadata for one source URL and media kind"""
    title: str
    available_qualities: List[str] = []
