from typing import Optional

from fastapi import Request

from download_proxy.core.errors import InvalidURLError, UpstreamResolutionError
from download_proxy.core.logging import log_error, log_warning
from download_proxy.models.internal import MediaKind, MediaMetadata, ResolvedURL
from download_proxy.services.extractor import ExtractionService
from download_proxy.services.format import FormatDecision

CANONICAL_URL = "https://www.youtube.com/watch?v={video_id}"


class Resolver:
    """Validate source URLs and look up display metadata"""

    def __init__(self, extractor: ExtractionService, request: Request):
        self.extractor = extractor
        self.request = request

    def resolve(self, raw_url: Optional[str]) -> ResolvedURL:
        """
        Turn a raw URL into a canonical handle.

        Fails fast, before any network call, on empty input or a URL outside
        the platform's URL grammar.
        """
        if raw_url is None or not raw_url.strip():
            raise InvalidURLError("Missing URL")

        if not self.extractor.validate(raw_url):
            raise InvalidURLError("Not a recognised video URL")

        video_id = self.extractor.video_id(raw_url)
        return ResolvedURL(url=CANONICAL_URL.format(video_id=video_id), video_id=video_id)

    async def describe(self, resolved: ResolvedURL, kind: MediaKind) -> MediaMetadata:
        """Fetch title and available qualities; raises UpstreamResolutionError"""
        info = await self.extractor.get_info(resolved.url)
        if not isinstance(info, dict):
            raise UpstreamResolutionError(f"Unexpected info payload: {type(info).__name__}")

        title = info.get("title")
        if not title or not isinstance(title, str):
            raise UpstreamResolutionError("Extraction returned no title")

        return MediaMetadata(
            title=title,
            available_qualities=FormatDecision.available_qualities(info, kind),
        )

    async def fetch_metadata(self, resolved: ResolvedURL, kind: MediaKind) -> Optional[MediaMetadata]:
        """Best-effort variant of describe(): failures are logged and yield None"""
        try:
            return await self.describe(resolved, kind)
        except UpstreamResolutionError as e:
            log_warning(self.request, f"Metadata unavailable for video {resolved.video_id}: {e}")
            return None
        except Exception as e:
            log_error(self.request, f"Metadata lookup failed for video {resolved.video_id}: {e!r}")
            return None
