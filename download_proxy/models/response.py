from typing import List

from pydantic import BaseModel

from download_proxy.models.internal import MediaKind


class MediaInfo(BaseModel):
    """Media information response"""
    title: str
    kind: MediaKind
    qualities: List[str] = []
    video_id: str
    url: str
