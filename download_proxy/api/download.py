from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import PlainTextResponse

from download_proxy.core.errors import InvalidURLError, UpstreamResolutionError
from download_proxy.core.logging import log_error, log_info
from download_proxy.i18n import i18n
from download_proxy.infra.rate_limit import rate_limiter
from download_proxy.models.internal import MediaKind
from download_proxy.services.extractor import ExtractionService
from download_proxy.services.resolver import Resolver
from download_proxy.services.stream import ProxyStreamer
from download_proxy.services.ytdlp import get_extractor
from download_proxy.utils.locale import get_locale, safe_url_for_log
import functools

router = APIRouter()


@router.get("/download", dependencies=[Depends(rate_limiter)])
async def download_media(
    request: Request,
    url: Optional[str] = Query(None, description="Source video URL"),
    media_type: str = Query(MediaKind.VIDEO.value, alias="type", description="video or audio"),
    quality: Optional[str] = Query(None, description="Quality label, e.g. highest or 720p (video only)"),
    extractor: ExtractionService = Depends(get_extractor),
):
    """Stream a video or its audio track to the client as an attachment"""

    locale = get_locale(request.headers.get("accept-language"))
    _ = functools.partial(i18n.get, locale=locale)
    safe_url = safe_url_for_log(url)

    resolver = Resolver(extractor, request)
    try:
        resolved = resolver.resolve(url)
    except InvalidURLError as e:
        log_info(request, f"Rejected {safe_url}: {e}")
        return PlainTextResponse(_("error.invalid_url"), status_code=400)

    try:
        kind = MediaKind(media_type.strip().lower())
    except ValueError:
        return PlainTextResponse(_("error.invalid_type", value=media_type), status_code=400)

    log_info(request, f"Download requested: {kind.value} quality={quality or 'default'} url={safe_url}")

    streamer = ProxyStreamer(extractor, resolver, request)
    try:
        prepared = await streamer.stream(resolved, kind, quality)
    except UpstreamResolutionError as e:
        log_error(request, f"Upstream resolution failed for video {resolved.video_id}: {e}")
        return PlainTextResponse(_("error.download_failed"), status_code=500)
    except Exception as e:
        log_error(request, f"Stream setup error for video {resolved.video_id}: {str(e)}")
        return PlainTextResponse(_("error.download_failed"), status_code=500)

    log_info(request, f"Streaming {prepared.filename}")
    return prepared.to_response()
