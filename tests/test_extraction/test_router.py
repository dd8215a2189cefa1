"""Tests for URL classification and URL-shape helpers."""

import httpx
import pytest

from link_preview.extraction import router
from link_preview.extraction.router import (
    UrlKind,
    classify_url,
    extract_apple_podcast_ids,
    extract_spotify_episode_id,
    extract_youtube_video_id,
    is_direct_media_url,
    is_local_path,
    is_social_status_url,
)


@pytest.fixture(autouse=True)
def clear_probe_cache():
    router._probe_cache.clear()
    yield
    router._probe_cache.clear()


def test_youtube_watch_url():
    assert extract_youtube_video_id("https://www.youtube.com/watch?v=dQw4w9WgXcQ") == "dQw4w9WgXcQ"


def test_youtube_short_url():
    assert extract_youtube_video_id("https://youtu.be/dQw4w9WgXcQ") == "dQw4w9WgXcQ"


def test_youtube_shorts_url():
    assert extract_youtube_video_id("https://www.youtube.com/shorts/dQw4w9WgXcQ") == "dQw4w9WgXcQ"


def test_youtube_with_extra_params():
    url = "https://www.youtube.com/watch?v=dQw4w9WgXcQ&t=120&list=PLxxx"
    assert extract_youtube_video_id(url) == "dQw4w9WgXcQ"


def test_non_youtube_has_no_video_id():
    assert extract_youtube_video_id("https://example.com/watch?v=dQw4w9WgXcQ") is None


def test_spotify_episode_id():
    assert extract_spotify_episode_id("https://open.spotify.com/episode/4rOoJ6Egrf8K2IrywzwOMk?si=x") == (
        "4rOoJ6Egrf8K2IrywzwOMk"
    )
    assert extract_spotify_episode_id("https://open.spotify.com/show/abc") is None


def test_apple_podcast_ids():
    ids = extract_apple_podcast_ids("https://podcasts.apple.com/us/podcast/some-show/id123456?i=1000654321")
    assert ids.show_id == "123456"
    assert ids.episode_id == "1000654321"
    show_only = extract_apple_podcast_ids("https://podcasts.apple.com/us/podcast/some-show/id123456")
    assert show_only.episode_id is None
    assert extract_apple_podcast_ids("https://example.com/id123") is None


def test_social_status_url():
    assert is_social_status_url("https://x.com/user/status/1234567890")
    assert is_social_status_url("https://twitter.com/user/status/1234567890")
    assert not is_social_status_url("https://x.com/user")
    assert not is_social_status_url("https://example.com/user/status/1")


def test_direct_media_url():
    assert is_direct_media_url("https://cdn.example.com/episode.mp3?token=1")
    assert not is_direct_media_url("https://example.com/page")


def test_local_paths():
    assert is_local_path("file:///tmp/a.pdf")
    assert is_local_path("/tmp/a.pdf")
    assert is_local_path("./notes.txt")
    assert not is_local_path("https://example.com/a.pdf")


@pytest.mark.asyncio
async def test_classify_asset_extension_without_probe():
    def handler(request):
        raise AssertionError("no probe expected")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        assert await classify_url("https://example.com/paper.pdf", client) == UrlKind.ASSET
        assert await classify_url("https://www.youtube.com/watch?v=dQw4w9WgXcQ", client) == UrlKind.WEBSITE


@pytest.mark.asyncio
async def test_classify_probes_content_type_once():
    calls = []

    def handler(request):
        calls.append(request.method)
        return httpx.Response(200, headers={"content-type": "audio/mpeg"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        assert await classify_url("https://example.com/stream", client) == UrlKind.ASSET
        assert await classify_url("https://example.com/stream", client) == UrlKind.ASSET
    assert calls == ["HEAD"]


@pytest.mark.asyncio
async def test_classify_probe_failure_means_website():
    def handler(request):
        raise httpx.ConnectError("down", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        assert await classify_url("https://example.com/page", client) == UrlKind.WEBSITE


@pytest.mark.asyncio
async def test_classify_html_is_website():
    def handler(request):
        return httpx.Response(200, headers={"content-type": "text/html; charset=utf-8"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        assert await classify_url("https://example.com/page", client) == UrlKind.WEBSITE
