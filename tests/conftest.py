import asyncio
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pytest
from httpx import ASGITransport, AsyncClient
from starlette.requests import Request

from download_proxy.core.errors import UpstreamStreamError
from download_proxy.main import app
from download_proxy.models.internal import StreamRequest
from download_proxy.services.extractor import ExtractionService, UpstreamStream
from download_proxy.services.ytdlp import YtDlpExtractor, get_extractor

DEFAULT_INFO = {
    "id": "abc123",
    "title": "Test Video",
    "formats": [
        {"format_id": "18", "height": 360, "vcodec": "avc1", "acodec": "mp4a"},
        {"format_id": "22", "height": 720, "vcodec": "avc1", "acodec": "mp4a"},
        {"format_id": "137", "height": 1080, "vcodec": "avc1", "acodec": "none"},
        {"format_id": "140", "vcodec": "none", "acodec": "mp4a"},
    ],
}


class FakeUpstream(UpstreamStream):
    """In-memory upstream that yields chunks and optionally fails afterwards"""

    def __init__(self, chunks: Sequence[bytes], error: Optional[str] = None):
        self.chunks = list(chunks)
        self.error = error
        self.yielded = 0
        self.closed = False

    async def __aiter__(self):
        for chunk in self.chunks:
            await asyncio.sleep(0)
            self.yielded += 1
            yield chunk
        if self.error:
            raise UpstreamStreamError(self.error)

    async def aclose(self) -> None:
        self.closed = True


class FakeExtractor(ExtractionService):
    """Records every upstream call; URL grammar is the real one"""

    def __init__(self):
        self.grammar = YtDlpExtractor()
        self.info: Dict[str, Any] = dict(DEFAULT_INFO)
        self.info_error: Optional[Exception] = None
        self.open_error: Optional[Exception] = None
        self.chunks: List[bytes] = [b"chunk-1", b"chunk-2", b"chunk-3"]
        self.stream_error: Optional[str] = None
        self.info_calls: List[str] = []
        self.stream_calls: List[Tuple[str, StreamRequest]] = []
        self.streams: List[FakeUpstream] = []

    @property
    def upstream_calls(self) -> int:
        return len(self.info_calls) + len(self.stream_calls)

    def validate(self, url: str) -> bool:
        return self.grammar.validate(url)

    def video_id(self, url: str) -> str:
        return self.grammar.video_id(url)

    async def get_info(self, url: str) -> Dict[str, Any]:
        self.info_calls.append(url)
        if self.info_error:
            raise self.info_error
        return self.info

    async def open_stream(self, url: str, request: StreamRequest) -> UpstreamStream:
        self.stream_calls.append((url, request))
        if self.open_error:
            raise self.open_error
        stream = FakeUpstream(self.chunks, error=self.stream_error)
        self.streams.append(stream)
        return stream


@pytest.fixture
def extractor():
    fake = FakeExtractor()
    app.dependency_overrides[get_extractor] = lambda: fake
    yield fake
    app.dependency_overrides.clear()


@pytest.fixture
def make_client():
    def factory() -> AsyncClient:
        return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")
    return factory


@pytest.fixture
def request_ctx() -> Request:
    request = Request({"type": "http", "method": "GET", "path": "/", "headers": [], "query_string": b""})
    request.state.request_id = "test-request"
    return request
