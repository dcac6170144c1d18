import asyncio
import json
import re
from collections import deque
from contextlib import suppress
from typing import Any, AsyncIterator, Dict, List, NamedTuple, Optional
from urllib.parse import parse_qs, urlparse

from download_proxy.config.settings import config
from download_proxy.core.errors import InvalidURLError, UpstreamResolutionError, UpstreamStreamError
from download_proxy.models.internal import StreamRequest
from download_proxy.services.extractor import ExtractionService, UpstreamStream
from download_proxy.services.format import FormatDecision

STDERR_MAX_LINES = 50
STDERR_CHUNK_SIZE = 4096
STDERR_LINE_MAX = 1024
VIDEO_ID_RE = re.compile(r"^[A-Za-z0-9_-]+$")
ID_PATH_PREFIXES = ("embed", "v", "shorts", "live")

class CompletedProcess(NamedTuple):
    """Subprocess result"""
    returncode: int
    stdout: bytes
    stderr: bytes

class SubprocessExecutor:
    """Execute subprocess with consistent error handling"""

    @staticmethod
    async def run(
        cmd: List[str],
        timeout: float,
    ) -> CompletedProcess:
        """
        Run subprocess with timeout and proper cleanup.
        Prevents process leaks and ensures consistent error handling.
        """
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            stdin=asyncio.subprocess.DEVNULL
        )

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(),
                timeout=timeout
            )

            return CompletedProcess(
                returncode=process.returncode,
                stdout=stdout,
                stderr=stderr
            )

        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise
        except BaseException:
            if process.returncode is None:
                process.kill()
                await process.wait()
            raise

class YTDLPCommandBuilder:
    """Build yt-dlp commands"""

    @staticmethod
    def _common_options() -> List[str]:
        cmd = [
            '--no-playlist',
            '--socket-timeout', str(config.download.socket_timeout),
            '--retries', str(config.download.retries),
        ]

        if not config.ytdlp.enable_live_streams:
            cmd.extend(['--match-filter', '!is_live'])

        if config.ytdlp.js_runtime:
            cmd.extend(['--js-runtimes', config.ytdlp.js_runtime])

        return cmd

    @staticmethod
    def build_version_command() -> List[str]:
        return [config.ytdlp.binary, '--version']

    @staticmethod
    def build_info_command(url: str) -> List[str]:
        """Build command for fetching video info"""
        cmd = [config.ytdlp.binary, '--dump-json', '--skip-download']
        cmd.extend(YTDLPCommandBuilder._common_options())
        cmd.append(url)
        return cmd

    @staticmethod
    def build_stream_command(url: str, format_str: str) -> List[str]:
        """Build command for streaming one variant to stdout"""
        cmd = [config.ytdlp.binary, '-f', format_str, '-o', '-']
        cmd.extend(YTDLPCommandBuilder._common_options())

        # NOTE: Do NOT use --print here as it mixes with binary output in stdout
        cmd.append('--no-progress')
        cmd.append('--quiet')
        cmd.append(url)
        return cmd


class YtDlpProcessStream(UpstreamStream):
    """Byte stream read from the stdout of a running yt-dlp process"""

    def __init__(
        self,
        process: asyncio.subprocess.Process,
        chunk_size: int,
        chunk_timeout: Optional[float] = None,
    ):
        self._process = process
        self._chunk_size = chunk_size
        self._chunk_timeout = chunk_timeout
        self._stderr_lines: deque = deque(maxlen=STDERR_MAX_LINES)
        self._stderr_task = asyncio.create_task(self._drain_stderr())
        self._closed = False

    async def _drain_stderr(self) -> None:
        """
        Drain stderr to prevent buffer deadlock.

        Reads fixed-size chunks rather than lines: StreamReader.readline()
        fails on lines longer than its buffer limit.
        """
        pending = b""
        while True:
            chunk = await self._process.stderr.read(STDERR_CHUNK_SIZE)
            if not chunk:
                break
            *lines, pending = (pending + chunk).split(b"\n")
            for line in lines:
                self._keep_stderr_line(line)
            pending = pending[-STDERR_LINE_MAX:]
        if pending:
            self._keep_stderr_line(pending)

    def _keep_stderr_line(self, line: bytes) -> None:
        text = line[:STDERR_LINE_MAX].decode(errors="replace").strip()
        if text:
            self._stderr_lines.append(text)

    def error_summary(self) -> str:
        return '\n'.join(self._stderr_lines)[:200]

    async def _read_chunk(self) -> bytes:
        read = self._process.stdout.read(self._chunk_size)
        if self._chunk_timeout is None:
            return await read
        try:
            return await asyncio.wait_for(read, timeout=self._chunk_timeout)
        except asyncio.TimeoutError:
            raise UpstreamStreamError(f"No data from yt-dlp for {self._chunk_timeout}s")

    async def __aiter__(self) -> AsyncIterator[bytes]:
        while True:
            chunk = await self._read_chunk()
            if not chunk:
                break
            yield chunk

        try:
            returncode = await asyncio.wait_for(self._process.wait(), timeout=5.0)
        except asyncio.TimeoutError:
            raise UpstreamStreamError("yt-dlp did not exit after end of output")

        if returncode != 0:
            # stderr reaches EOF once the process is gone
            with suppress(asyncio.TimeoutError):
                await asyncio.wait_for(self._stderr_task, timeout=1.0)
            raise UpstreamStreamError(f"yt-dlp exited with {returncode}: {self.error_summary()}")

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True

        # Release synchronously first; the awaits below only reap.
        if self._process.returncode is None:
            with suppress(ProcessLookupError):
                self._process.kill()
        self._stderr_task.cancel()

        try:
            with suppress(asyncio.CancelledError):
                await self._stderr_task
        finally:
            await self._process.wait()


class YtDlpExtractor(ExtractionService):
    """Extraction service backed by the yt-dlp command line tool"""

    def _parse(self, url: str):
        try:
            parsed = urlparse(url.strip())
        except ValueError:
            return None
        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            return None
        return parsed

    def video_id(self, url: str) -> str:
        parsed = self._parse(url)
        if parsed is None:
            raise InvalidURLError("Not an http(s) URL")

        host = parsed.hostname.lower()
        segments = [s for s in parsed.path.split("/") if s]
        candidate = None

        if host in config.resolver.short_hosts:
            candidate = segments[0] if segments else None
        elif host in config.resolver.hosts:
            if segments == ["watch"]:
                candidate = (parse_qs(parsed.query).get("v") or [None])[0]
            elif len(segments) >= 2 and segments[0] in ID_PATH_PREFIXES:
                candidate = segments[1]
        else:
            raise InvalidURLError(f"Unsupported host: {host}")

        if not candidate or not VIDEO_ID_RE.match(candidate):
            raise InvalidURLError("No video id in URL")
        return candidate

    def validate(self, url: str) -> bool:
        try:
            self.video_id(url)
        except InvalidURLError:
            return False
        return True

    async def get_info(self, url: str) -> Dict[str, Any]:
        cmd = YTDLPCommandBuilder.build_info_command(url)
        try:
            result = await SubprocessExecutor.run(cmd, timeout=config.download.info_timeout_seconds)
        except asyncio.TimeoutError:
            raise UpstreamResolutionError("yt-dlp info timeout", timed_out=True)
        except OSError as e:
            raise UpstreamResolutionError(f"Cannot run yt-dlp: {e}")

        if result.returncode != 0:
            error_msg = result.stderr.decode(errors="replace").strip()
            raise UpstreamResolutionError(error_msg[:200] or "yt-dlp info failed")

        try:
            return json.loads(result.stdout.decode())
        except (UnicodeDecodeError, json.JSONDecodeError):
            raise UpstreamResolutionError("Failed to parse yt-dlp output")

    async def open_stream(self, url: str, request: StreamRequest) -> UpstreamStream:
        format_str = FormatDecision.decide(request)
        cmd = YTDLPCommandBuilder.build_stream_command(url, format_str)
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                stdin=asyncio.subprocess.DEVNULL
            )
        except OSError as e:
            raise UpstreamResolutionError(f"Cannot run yt-dlp: {e}")

        return YtDlpProcessStream(
            process,
            chunk_size=config.download.chunk_size,
            chunk_timeout=config.download.chunk_timeout_seconds,
        )


extractor = YtDlpExtractor()


def get_extractor() -> ExtractionService:
    """FastAPI dependency for the extraction service"""
    return extractor
