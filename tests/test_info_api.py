import pytest

from download_proxy.core.errors import UpstreamResolutionError


@pytest.mark.asyncio
async def test_info_lists_available_qualities(extractor, make_client):
    async with make_client() as ac:
        response = await ac.get("/info", params={"url": "https://youtu.be/abc123"})

    assert response.status_code == 200
    assert response.json() == {
        "title": "Test Video",
        "kind": "video",
        "qualities": ["highest", "720p", "360p"],
        "video_id": "abc123",
        "url": "https://www.youtube.com/watch?v=abc123",
    }
    assert extractor.stream_calls == []


@pytest.mark.asyncio
async def test_info_for_audio(extractor, make_client):
    async with make_client() as ac:
        response = await ac.get("/info", params={"url": "https://youtu.be/abc123", "type": "audio"})

    assert response.status_code == 200
    assert response.json()["qualities"] == ["highestaudio"]


@pytest.mark.asyncio
async def test_info_rejects_invalid_url(extractor, make_client):
    async with make_client() as ac:
        response = await ac.get("/info", params={"url": "https://example.com/video"})

    assert response.status_code == 400
    assert extractor.upstream_calls == 0


@pytest.mark.asyncio
async def test_info_extraction_failure(extractor, make_client):
    extractor.info_error = UpstreamResolutionError("This video is private")

    async with make_client() as ac:
        response = await ac.get("/info", params={"url": "https://youtu.be/abc123"})

    assert response.status_code == 500
    assert response.text == "Failed to fetch video info."


@pytest.mark.asyncio
async def test_info_extraction_timeout(extractor, make_client):
    extractor.info_error = UpstreamResolutionError("yt-dlp info timeout", timed_out=True)

    async with make_client() as ac:
        response = await ac.get("/info", params={"url": "https://youtu.be/abc123"})

    assert response.status_code == 504
