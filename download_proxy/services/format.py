import logging
import re
from typing import Any, Dict, List, NamedTuple

from download_proxy.models.internal import MediaKind, StreamFilter, StreamRequest

logger = logging.getLogger("download_proxy")

HEIGHT_LABEL_RE = re.compile(r"^(\d{2,4})p(?:\d{2})?$")
ITAG_RE = re.compile(r"^\d+$")

VIDEO_DEFAULT_SELECTOR = "best"
AUDIO_DEFAULT_SELECTOR = "bestaudio"


class OutputFormat(NamedTuple):
    """Attachment extension and media type for a media kind"""
    ext: str
    media_type: str


OUTPUT_FORMATS = {
    MediaKind.VIDEO: OutputFormat(ext="mp4", media_type="video/mp4"),
    MediaKind.AUDIO: OutputFormat(ext="mp3", media_type="audio/mpeg"),
}


class FormatDecision:
    """Make format decisions"""

    @staticmethod
    def decide(request: StreamRequest) -> str:
        """
        Translate a variant request into a yt-dlp format selector.

        Unknown quality labels fall back to the default tier of the filter.
        Concrete tiers carry the default as a "/" fallback so a missing
        format does not fail the download.
        """
        label = request.quality.strip().lower()

        if request.filter == StreamFilter.AUDIO_ONLY:
            if label == "lowestaudio":
                return "worstaudio"
            if label not in ("highestaudio", "highest", ""):
                logger.warning(f"Unknown audio quality '{request.quality}', using {AUDIO_DEFAULT_SELECTOR}")
            return AUDIO_DEFAULT_SELECTOR

        # "best"/"worst" in yt-dlp only match formats that carry both audio and video
        if label in ("highest", ""):
            return VIDEO_DEFAULT_SELECTOR
        if label == "lowest":
            return "worst"

        match = HEIGHT_LABEL_RE.match(label)
        if match:
            return f"best[height<={match.group(1)}]/{VIDEO_DEFAULT_SELECTOR}"

        if ITAG_RE.match(label):
            return f"{label}/{VIDEO_DEFAULT_SELECTOR}"

        logger.warning(f"Unknown video quality '{request.quality}', using {VIDEO_DEFAULT_SELECTOR}")
        return VIDEO_DEFAULT_SELECTOR

    @staticmethod
    def output_format(kind: MediaKind) -> OutputFormat:
        return OUTPUT_FORMATS[kind]

    @staticmethod
    def available_qualities(info: Dict[str, Any], kind: MediaKind) -> List[str]:
        """Quality labels a client can request for this kind, best first"""
        if kind == MediaKind.AUDIO:
            return ["highestaudio"]

        def is_audio_and_video(f):
            return f.get("vcodec", "none") != "none" and f.get("acodec", "none") != "none"

        heights = {
            f["height"]
            for f in info.get("formats") or []
            if is_audio_and_video(f) and f.get("height")
        }
        return ["highest"] + [f"{h}p" for h in sorted(heights, reverse=True)]
