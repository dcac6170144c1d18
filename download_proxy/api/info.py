from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import PlainTextResponse

from download_proxy.core.errors import InvalidURLError, UpstreamResolutionError
from download_proxy.core.logging import log_error, log_info
from download_proxy.i18n import i18n
from download_proxy.infra.rate_limit import rate_limiter
from download_proxy.models.internal import MediaKind
from download_proxy.models.response import MediaInfo
from download_proxy.services.extractor import ExtractionService
from download_proxy.services.resolver import Resolver
from download_proxy.services.ytdlp import get_extractor
from download_proxy.utils.locale import get_locale, safe_url_for_log
import functools

router = APIRouter()

@router.get("/info", response_model=MediaInfo, dependencies=[Depends(rate_limiter)])
async def get_media_info(
    request: Request,
    url: Optional[str] = Query(None, description="Source video URL"),
    media_type: str = Query(MediaKind.VIDEO.value, alias="type", description="video or audio"),
    extractor: ExtractionService = Depends(get_extractor),
):
    """Title and the qualities actually offered for a URL"""

    locale = get_locale(request.headers.get("accept-language"))
    _ = functools.partial(i18n.get, locale=locale)

    resolver = Resolver(extractor, request)
    try:
        resolved = resolver.resolve(url)
    except InvalidURLError as e:
        log_info(request, f"Rejected {safe_url_for_log(url)}: {e}")
        return PlainTextResponse(_("error.invalid_url"), status_code=400)

    try:
        kind = MediaKind(media_type.strip().lower())
    except ValueError:
        return PlainTextResponse(_("error.invalid_type", value=media_type), status_code=400)

    log_info(request, f"Fetching info for video {resolved.video_id}")

    try:
        metadata = await resolver.describe(resolved, kind)
    except UpstreamResolutionError as e:
        log_error(request, f"Video info error: {str(e)}")
        if e.timed_out:
            return PlainTextResponse(_("error.timeout"), status_code=504)
        return PlainTextResponse(_("error.fetch_info_failed"), status_code=500)

    log_info(request, f"Info retrieved: {metadata.title}")
    return MediaInfo(
        title=metadata.title,
        kind=kind,
        qualities=metadata.available_qualities,
        video_id=resolved.video_id,
        url=resolved.url,
    )
