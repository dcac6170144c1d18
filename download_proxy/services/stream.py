from enum import Enum
from typing import AsyncIterator, Dict, NamedTuple, Optional

from fastapi import Request
from fastapi.responses import StreamingResponse

from download_proxy.core.errors import MidStreamError, UpstreamResolutionError, UpstreamStreamError
from download_proxy.core.logging import REQUEST_ID_HEADER, get_request_id, log_error, log_info, log_warning
from download_proxy.models.internal import MediaKind, ResolvedURL
from download_proxy.models.request import DownloadRequest
from download_proxy.services.extractor import ExtractionService, UpstreamStream
from download_proxy.services.format import FormatDecision
from download_proxy.services.resolver import Resolver
from download_proxy.utils.filename import DEFAULT_TITLE, attachment_filename, content_disposition


class StreamState(str, Enum):
    PENDING = "pending"
    HEADERS_COMMITTED = "headers_committed"
    STREAMING = "streaming"
    COMPLETED = "completed"
    ABORTED = "aborted"
    REJECTED = "rejected"


TRANSITIONS = {
    StreamState.PENDING: {StreamState.HEADERS_COMMITTED, StreamState.REJECTED},
    # A client can go away between the response start and the first body chunk
    StreamState.HEADERS_COMMITTED: {StreamState.STREAMING, StreamState.ABORTED},
    StreamState.STREAMING: {StreamState.COMPLETED, StreamState.ABORTED},
}

TERMINAL_STATES = {StreamState.COMPLETED, StreamState.ABORTED, StreamState.REJECTED}


class StreamSession:
    """
    Binds one upstream byte stream to one HTTP response.

    The session owns the upstream exclusively and releases it as soon as the
    response completes, fails or the client disconnects.
    """

    def __init__(self, upstream: UpstreamStream, request: Request):
        self.request = request
        self.bytes_transferred = 0
        self.state = StreamState.PENDING
        self._upstream = upstream
        self._chunks = upstream.__aiter__()
        self._first_chunk: Optional[bytes] = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _transition(self, new_state: StreamState) -> None:
        if new_state not in TRANSITIONS.get(self.state, ()):
            raise RuntimeError(f"Invalid stream transition {self.state.value} -> {new_state.value}")
        self.state = new_state

    async def prime(self) -> None:
        """
        Wait for the first upstream chunk.

        Failures here happen before any header is sent, so they are reported
        as UpstreamResolutionError and the session is rejected.
        """
        try:
            self._first_chunk = await self._chunks.__anext__()
        except StopAsyncIteration:
            # yt-dlp exits 0 without output when a filter (e.g. !is_live) drops the video
            self._transition(StreamState.REJECTED)
            await self.close()
            raise UpstreamResolutionError("upstream produced no data")
        except UpstreamStreamError as e:
            self._transition(StreamState.REJECTED)
            await self.close()
            raise UpstreamResolutionError(str(e)) from e
        except BaseException:
            await self.close()
            raise

    def commit_headers(self) -> None:
        self._transition(StreamState.HEADERS_COMMITTED)

    async def iter_bytes(self) -> AsyncIterator[bytes]:
        """Forward upstream chunks in order, one at a time"""
        try:
            self._transition(StreamState.STREAMING)

            if self._first_chunk:
                self.bytes_transferred += len(self._first_chunk)
                yield self._first_chunk
            self._first_chunk = None

            async for chunk in self._chunks:
                self.bytes_transferred += len(chunk)
                yield chunk

        except UpstreamStreamError as e:
            self._transition(StreamState.ABORTED)
            log_error(self.request, f"Upstream failed after {self.bytes_transferred} bytes: {e}")
            raise MidStreamError(str(e)) from e
        except BaseException:
            # Client disconnect or cancellation
            if self.state not in TERMINAL_STATES:
                self._transition(StreamState.ABORTED)
                log_warning(self.request, f"Stream aborted by client after {self.bytes_transferred} bytes")
            raise
        else:
            self._transition(StreamState.COMPLETED)
            log_info(self.request, f"Stream completed: {self.bytes_transferred} bytes")
        finally:
            await self.close()

    async def close(self) -> None:
        """Release the upstream; safe to call more than once"""
        if self._closed:
            return
        self._closed = True
        if self.state in (StreamState.HEADERS_COMMITTED, StreamState.STREAMING):
            self._transition(StreamState.ABORTED)
            log_warning(self.request, f"Stream aborted by client after {self.bytes_transferred} bytes")
        await self._upstream.aclose()


class StreamSessionResponse(StreamingResponse):
    """Streaming response that never outlives its StreamSession"""

    def __init__(self, session: StreamSession, **kwargs):
        super().__init__(session.iter_bytes(), **kwargs)
        self.session = session

    async def __call__(self, scope, receive, send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            await self.session.close()


class PreparedDownload(NamedTuple):
    """A primed session plus the headers fixed for its response"""
    session: StreamSession
    headers: Dict[str, str]
    media_type: str
    filename: str

    def to_response(self) -> StreamSessionResponse:
        return StreamSessionResponse(
            self.session,
            status_code=200,
            media_type=self.media_type,
            headers=self.headers,
        )


class ProxyStreamer:
    """Relay one media variant from the extraction service to a client"""

    def __init__(self, extractor: ExtractionService, resolver: Resolver, request: Request):
        self.extractor = extractor
        self.resolver = resolver
        self.request = request

    async def stream(self, resolved: ResolvedURL, kind: MediaKind, quality: Optional[str]) -> PreparedDownload:
        """
        Open the upstream stream for the selected variant and fix the headers.

        The title lookup is best effort: without it the attachment is named
        after DEFAULT_TITLE. Any failure to start the upstream raises
        UpstreamResolutionError before a header is committed.
        """
        stream_request = DownloadRequest(url=resolved.url, kind=kind, quality=quality).to_stream_request()
        output = FormatDecision.output_format(kind)

        metadata = await self.resolver.fetch_metadata(resolved, kind)
        title = metadata.title if metadata else DEFAULT_TITLE
        filename = attachment_filename(title, output.ext)

        log_info(
            self.request,
            f"Opening {stream_request.filter.value}/{stream_request.quality} stream for video {resolved.video_id}"
        )
        upstream = await self.extractor.open_stream(resolved.url, stream_request)

        session = StreamSession(upstream, self.request)
        await session.prime()

        headers = {
            'Content-Disposition': content_disposition(filename),
            'X-Content-Type-Options': 'nosniff',
            'Cache-Control': 'no-cache',
            'Accept-Ranges': 'none',
            REQUEST_ID_HEADER: get_request_id(self.request),
        }
        session.commit_headers()

        return PreparedDownload(session=session, headers=headers, media_type=output.media_type, filename=filename)
