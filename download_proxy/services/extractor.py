from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict

from download_proxy.models.internal import StreamRequest


class UpstreamStream(ABC):
    """
    One open byte source for a single media variant.

    Iterating yields chunks in the order they were produced. Iteration stops
    at end-of-stream and raises UpstreamStreamError if the source fails.
    aclose() releases the underlying resources and is safe to call twice.
    """

    @abstractmethod
    def __aiter__(self) -> AsyncIterator[bytes]:
        pass

    @abstractmethod
    async def aclose(self) -> None:
        pass


class ExtractionService(ABC):
    """
    Interface to the external extraction service.

    Implementations turn a page URL into metadata and media byte streams.
    They do NOT decide which variant a client wants; that is passed in as a
    StreamRequest.
    """

    @abstractmethod
    def validate(self, url: str) -> bool:
        """Return True if the URL matches the platform URL grammar."""

    @abstractmethod
    def video_id(self, url: str) -> str:
        """Return the video id of a URL that passed validate()."""

    @abstractmethod
    async def get_info(self, url: str) -> Dict[str, Any]:
        """
        Fetch metadata for a URL.

        Returns a dict with at least "title" and "formats".

        Raises:
            UpstreamResolutionError: if no info can be produced.
        """

    @abstractmethod
    async def open_stream(self, url: str, request: StreamRequest) -> UpstreamStream:
        """
        Start streaming the variant selected by request.

        Raises:
            UpstreamResolutionError: if the stream cannot be started.
        """
