from pydantic import BaseModel, Field, field_validator

from download_proxy.models.internal import MediaKind, StreamFilter, StreamRequest

DEFAULT_VIDEO_QUALITY = "highest"
AUDIO_QUALITY = "highestaudio"


class DownloadRequest(BaseModel):
    url: str = Field(..., description="Source video URL")
    kind: MediaKind = Field(MediaKind.VIDEO, description="video (audio+video) or audio only")
    quality: str = Field(DEFAULT_VIDEO_QUALITY, description="Quality label, forwarded opaquely for video")

    @field_validator("quality", mode="before")
    @classmethod
    def default_quality(cls, v):
        """Treat a missing or blank label as the default tier"""
        if v is None or not str(v).strip():
            return DEFAULT_VIDEO_QUALITY
        return v

    def to_stream_request(self) -> StreamRequest:
        """Apply the variant selection policy"""
        # Audio has no quality ladder of its own: always the best audio-only variant.
        if self.kind == MediaKind.AUDIO:
            return StreamRequest(filter=StreamFilter.AUDIO_ONLY, quality=AUDIO_QUALITY)

        return StreamRequest(filter=StreamFilter.AUDIO_AND_VIDEO, quality=self.quality)
