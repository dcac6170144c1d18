import asyncio
import sys

import pytest

from download_proxy.config.settings import config
from download_proxy.core.errors import UpstreamResolutionError, UpstreamStreamError
from download_proxy.models.internal import StreamFilter, StreamRequest
from download_proxy.services.ytdlp import YTDLPCommandBuilder, YtDlpExtractor

VIDEO_720 = StreamRequest(filter=StreamFilter.AUDIO_AND_VIDEO, quality="720p")
URL = "https://www.youtube.com/watch?v=abc123"


def python_cmd(code: str):
    return [sys.executable, "-c", code]


@pytest.fixture
def fake_ytdlp(monkeypatch):
    """Replace yt-dlp with a python one-liner; records the format selector asked for"""
    selectors = []

    def install(code: str):
        def build(url, format_str):
            selectors.append(format_str)
            return python_cmd(code)
        monkeypatch.setattr(YTDLPCommandBuilder, "build_stream_command", staticmethod(build))
        monkeypatch.setattr(YTDLPCommandBuilder, "build_info_command", staticmethod(lambda url: python_cmd(code)))
        return selectors

    return install


def test_stream_command_writes_to_stdout():
    cmd = YTDLPCommandBuilder.build_stream_command(URL, "best[height<=720]/best")

    assert cmd[0] == config.ytdlp.binary
    assert cmd[cmd.index("-f") + 1] == "best[height<=720]/best"
    assert cmd[cmd.index("-o") + 1] == "-"
    assert cmd[cmd.index("--retries") + 1] == "0"
    assert "--no-playlist" in cmd
    assert cmd[-1] == URL


def test_info_command_dumps_json():
    cmd = YTDLPCommandBuilder.build_info_command(URL)

    assert "--dump-json" in cmd
    assert "--skip-download" in cmd
    assert cmd[-1] == URL


def test_live_streams_are_filtered_by_default():
    cmd = YTDLPCommandBuilder.build_info_command(URL)

    assert cmd[cmd.index("--match-filter") + 1] == "!is_live"


@pytest.mark.asyncio
async def test_open_stream_relays_process_stdout(fake_ytdlp):
    selectors = fake_ytdlp(
        "import sys\n"
        "for i in range(64):\n"
        "    sys.stdout.buffer.write(bytes([i % 256]) * 4096)\n"
    )

    stream = await YtDlpExtractor().open_stream(URL, VIDEO_720)
    try:
        data = b"".join([chunk async for chunk in stream])
    finally:
        await stream.aclose()

    assert len(data) == 64 * 4096
    assert data[:4096] == b"\x00" * 4096
    assert data[-4096:] == bytes([63]) * 4096
    assert selectors == ["best[height<=720]/best"]


@pytest.mark.asyncio
async def test_nonzero_exit_after_output_raises(fake_ytdlp):
    fake_ytdlp(
        "import sys\n"
        "sys.stdout.buffer.write(b'partial')\n"
        "sys.stdout.flush()\n"
        "sys.stderr.write('ERROR: fragment 3 not found\\n')\n"
        "sys.exit(1)\n"
    )

    stream = await YtDlpExtractor().open_stream(URL, VIDEO_720)
    received = []
    try:
        with pytest.raises(UpstreamStreamError, match="fragment 3 not found"):
            async for chunk in stream:
                received.append(chunk)
    finally:
        await stream.aclose()

    assert b"".join(received) == b"partial"


@pytest.mark.asyncio
async def test_aclose_kills_running_process(fake_ytdlp):
    fake_ytdlp(
        "import sys\n"
        "while True:\n"
        "    sys.stdout.buffer.write(b'x' * 1024)\n"
        "    sys.stdout.flush()\n"
    )

    stream = await YtDlpExtractor().open_stream(URL, VIDEO_720)
    chunks = stream.__aiter__()
    assert await chunks.__anext__()

    await stream.aclose()
    await stream.aclose()

    assert stream._process.returncode is not None


@pytest.mark.asyncio
async def test_missing_binary_is_a_resolution_failure(monkeypatch):
    monkeypatch.setattr(config.ytdlp, "binary", "/nonexistent/yt-dlp")

    with pytest.raises(UpstreamResolutionError):
        await YtDlpExtractor().open_stream(URL, VIDEO_720)


@pytest.mark.asyncio
async def test_get_info_parses_json(fake_ytdlp):
    fake_ytdlp("import json; print(json.dumps({'title': 'Hello', 'formats': []}))")

    info = await YtDlpExtractor().get_info(URL)

    assert info == {"title": "Hello", "formats": []}


@pytest.mark.asyncio
async def test_get_info_failure(fake_ytdlp):
    fake_ytdlp("import sys; sys.stderr.write('ERROR: Private video'); sys.exit(1)")

    with pytest.raises(UpstreamResolutionError, match="Private video") as exc_info:
        await YtDlpExtractor().get_info(URL)

    assert not exc_info.value.timed_out


@pytest.mark.asyncio
async def test_get_info_timeout(fake_ytdlp, monkeypatch):
    monkeypatch.setattr(config.download, "info_timeout_seconds", 0.5)
    fake_ytdlp("import time; time.sleep(30)")

    with pytest.raises(UpstreamResolutionError) as exc_info:
        await YtDlpExtractor().get_info(URL)

    assert exc_info.value.timed_out


@pytest.mark.asyncio
async def test_get_info_rejects_garbage_output(fake_ytdlp):
    fake_ytdlp("print('not json')")

    with pytest.raises(UpstreamResolutionError):
        await YtDlpExtractor().get_info(URL)


@pytest.mark.asyncio
async def test_oversized_stderr_line_does_not_stall_the_stream(fake_ytdlp):
    fake_ytdlp(
        "import sys\n"
        "sys.stderr.write('x' * 200000 + '\\n')\n"
        "sys.stderr.write('WARNING: throttled\\n')\n"
        "sys.stderr.flush()\n"
        "sys.stdout.buffer.write(b'data')\n"
    )

    stream = await YtDlpExtractor().open_stream(URL, VIDEO_720)
    try:
        data = await asyncio.wait_for(_read_all(stream), timeout=10.0)
        await asyncio.wait_for(stream._stderr_task, timeout=5.0)
    finally:
        await stream.aclose()

    assert data == b"data"
    assert stream._stderr_lines[-1] == "WARNING: throttled"
    assert all(len(line) <= 1024 for line in stream._stderr_lines)
    assert stream._process.returncode == 0


@pytest.mark.asyncio
async def test_idle_upstream_fails_after_chunk_timeout(fake_ytdlp, monkeypatch):
    monkeypatch.setattr(config.download, "chunk_timeout_seconds", 0.2)
    fake_ytdlp(
        "import sys, time\n"
        "sys.stdout.buffer.write(b'first')\n"
        "sys.stdout.flush()\n"
        "time.sleep(30)\n"
    )

    stream = await YtDlpExtractor().open_stream(URL, VIDEO_720)
    received = []
    try:
        with pytest.raises(UpstreamStreamError, match="No data"):
            async for chunk in stream:
                received.append(chunk)
    finally:
        await stream.aclose()

    assert b"".join(received) == b"first"
    assert stream._process.returncode is not None


async def _read_all(stream) -> bytes:
    return b"".join([chunk async for chunk in stream])
