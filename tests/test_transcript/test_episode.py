"""Tests for podcast episode location (feeds, Spotify, Apple, embedded players)."""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock

import httpx
import pytest

from link_preview.errors import ProviderFailed
from link_preview.extraction.scrape import FirecrawlScraper
from link_preview.transcript.base import ProviderContext
from link_preview.transcript.episode import (
    SHARED_KEY,
    EpisodeLocator,
    extract_embedded_json_url,
    extract_html_audio_urls,
    extract_spotify_embed_data,
    looks_like_blocked_page,
)

FEED = """<?xml version="1.0"?>
<rss version="2.0">
  <channel>
    <title>The Show</title>
    <item>
      <title>Newest Episode</title>
      <enclosure url="https://cdn.example.com/newest.mp3" type="audio/mpeg" length="1"/>
    </item>
    <item>
      <title>The Interview</title>
      <enclosure url="https://cdn.example.com/interview.mp3" type="audio/mpeg" length="1"/>
    </item>
  </channel>
</rss>"""


def _embed_html(audio_urls=("https://audio-ak.scdn.co/preview.mp3",)):
    data = {
        "props": {
            "pageProps": {
                "state": {
                    "data": {
                        "entity": {"title": "The Interview", "subtitle": "The Show", "duration": 3_600_000},
                        "defaultAudioFileObject": {"url": list(audio_urls), "format": "MP4_128_CBCS"},
                    }
                }
            }
        }
    }
    return f'<html><script id="__NEXT_DATA__" type="application/json">{json.dumps(data)}</script></html>'


def _ctx(url, html=None):
    return ProviderContext(url=url, html=html, service="podcast")


def test_extract_spotify_embed_data():
    embed = extract_spotify_embed_data(
        _embed_html(("https://cdn.example.com/other.mp3", "https://audio-ak.scdn.co/clip.mp3"))
    )
    assert embed.show_title == "The Show"
    assert embed.episode_title == "The Interview"
    assert embed.duration_seconds == 3600
    assert embed.drm_format == "MP4_128_CBCS"
    assert embed.audio_url == "https://audio-ak.scdn.co/clip.mp3"
    assert extract_spotify_embed_data("<html></html>") is None


def test_blocked_page_detection():
    assert looks_like_blocked_page("<title>Attention Required! | Cloudflare</title>")
    assert not looks_like_blocked_page(_embed_html() + "captcha")
    assert not looks_like_blocked_page("<p>episode page</p>")


def test_embedded_json_url():
    html = '<script>window.data = {"feedUrl":"https:\\/\\/feeds.example.com\\/show.xml"}</script>'
    assert extract_embedded_json_url(html, "feedUrl") == "https://feeds.example.com/show.xml"
    assert extract_embedded_json_url(html, "streamUrl") is None


def test_html_audio_urls_are_absolute_and_unique():
    html = (
        '<meta property="og:audio" content="/media/ep.mp3">'
        '<audio src="/media/ep.mp3"><source src="https://cdn.example.com/ep.ogg"></audio>'
    )
    assert extract_html_audio_urls(html, "https://example.com/episodes/1") == [
        "https://example.com/media/ep.mp3",
        "https://cdn.example.com/ep.ogg",
    ]


@pytest.mark.asyncio
async def test_feed_page_is_located_without_requests(mock_http):
    def handler(request):
        raise AssertionError(f"unexpected request to {request.url}")

    async with mock_http(handler) as client:
        location = await EpisodeLocator(client).locate(_ctx("https://example.com/feed.xml", FEED))

    assert location.kind == "rss"
    assert location.episode_title == "Newest Episode"
    assert [a.url for a in location.audio] == ["https://cdn.example.com/newest.mp3"]


@pytest.mark.asyncio
async def test_spotify_episode_uses_embed_and_itunes_feed(mock_http):
    requests = []

    def handler(request):
        requests.append(f"{request.url.host}{request.url.path}")
        if request.url.host == "open.spotify.com":
            return httpx.Response(200, text=_embed_html())
        if request.url.path == "/search":
            assert request.url.params["entity"] == "podcast"
            return httpx.Response(200, json={"results": [
                {"collectionName": "Another Show", "feedUrl": "https://feeds.example.com/other.xml"},
                {"collectionName": "The Show", "feedUrl": "https://feeds.example.com/show.xml"},
            ]})
        if request.url.path == "/show.xml":
            return httpx.Response(200, text=FEED)
        return httpx.Response(404)

    async with mock_http(handler) as client:
        location = await EpisodeLocator(client).locate(_ctx("https://open.spotify.com/episode/4rOoJ6Egrf8K2IrywzwOMk"))

    assert location.kind == "spotify"
    assert location.show_title == "The Show"
    assert location.feed_url == "https://feeds.example.com/show.xml"
    assert [(a.kind, a.url) for a in location.audio] == [
        ("spotify_embed_audio", "https://audio-ak.scdn.co/preview.mp3"),
        ("spotify_itunes_rss", "https://cdn.example.com/interview.mp3"),
    ]
    assert location.audio[0].may_be_preview is True
    assert location.metadata["embed_via"] == "fetch"
    assert requests == [
        "open.spotify.com/embed/episode/4rOoJ6Egrf8K2IrywzwOMk",
        "itunes.apple.com/search",
        "feeds.example.com/show.xml",
    ]


@pytest.mark.asyncio
async def test_blocked_spotify_embed_failure_is_remembered(mock_http):
    calls = []

    def handler(request):
        calls.append(request.url)
        return httpx.Response(200, text="<title>Just a moment... verify you are human</title>")

    ctx = _ctx("https://open.spotify.com/episode/abc123")
    async with mock_http(handler) as client:
        locator = EpisodeLocator(client)
        with pytest.raises(ProviderFailed, match="blocked"):
            await locator.locate(ctx)
        with pytest.raises(ProviderFailed, match="blocked"):
            await locator.locate(ctx)

    assert len(calls) == 1
    assert isinstance(ctx.shared[SHARED_KEY], ProviderFailed)


@pytest.mark.asyncio
async def test_scrape_transport_error_is_remembered(mock_http):
    calls = {"embed": 0, "scrape": 0}

    def handler(request):
        if request.url.host == "api.firecrawl.dev":
            calls["scrape"] += 1
            raise httpx.ConnectError("refused", request=request)
        calls["embed"] += 1
        return httpx.Response(200, text="<title>Just a moment... verify you are human</title>")

    ctx = _ctx("https://open.spotify.com/episode/abc123")
    async with mock_http(handler) as client:
        locator = EpisodeLocator(client, FirecrawlScraper("fc-key", client))
        with pytest.raises(ProviderFailed, match="scrape fallback failed"):
            await locator.locate(ctx)
        with pytest.raises(ProviderFailed, match="scrape fallback failed"):
            await locator.locate(ctx)

    assert calls == {"embed": 1, "scrape": 1}


@pytest.mark.asyncio
async def test_unexpected_lookup_error_is_remembered(mock_http):
    scraper = SimpleNamespace(scrape=AsyncMock(side_effect=RuntimeError("boom")))
    ctx = _ctx("https://open.spotify.com/episode/abc123")
    async with mock_http(lambda request: httpx.Response(503)) as client:
        locator = EpisodeLocator(client, scraper)
        with pytest.raises(RuntimeError):
            await locator.locate(ctx)
        with pytest.raises(ProviderFailed, match="boom"):
            await locator.locate(ctx)

    scraper.scrape.assert_awaited_once()


@pytest.mark.asyncio
async def test_apple_episode_from_itunes_lookup(mock_http):
    def handler(request):
        if request.url.path == "/lookup":
            assert request.url.params["id"] == "42"
            return httpx.Response(200, json={"results": [
                {"wrapperType": "track", "kind": "podcast", "feedUrl": "https://feeds.example.com/show.xml"},
                {
                    "wrapperType": "podcastEpisode",
                    "trackId": 1001,
                    "trackName": "The Interview",
                    "collectionName": "The Show",
                    "episodeUrl": "https://cdn.example.com/interview.mp3",
                    "trackTimeMillis": 90_000,
                },
                {
                    "wrapperType": "podcastEpisode",
                    "trackId": 1002,
                    "trackName": "Newest Episode",
                    "episodeUrl": "https://cdn.example.com/newest.mp3",
                },
            ]})
        return httpx.Response(200, text=FEED)

    async with mock_http(handler) as client:
        location = await EpisodeLocator(client).locate(
            _ctx("https://podcasts.apple.com/us/podcast/the-show/id42?i=1001")
        )

    assert location.kind == "apple_itunes_episode"
    assert location.episode_title == "The Interview"
    assert location.show_title == "The Show"
    assert location.audio[0].url == "https://cdn.example.com/interview.mp3"
    assert location.audio[0].duration_seconds == 90
    assert location.feed_xml == FEED


@pytest.mark.asyncio
async def test_apple_show_without_episode_id_picks_newest(mock_http):
    def handler(request):
        return httpx.Response(200, json={"results": [
            {
                "wrapperType": "podcastEpisode",
                "trackName": "Old",
                "episodeUrl": "https://cdn.example.com/old.mp3",
                "releaseDate": "2024-01-01T00:00:00Z",
            },
            {
                "wrapperType": "podcastEpisode",
                "trackName": "New",
                "episodeUrl": "https://cdn.example.com/new.mp3",
                "releaseDate": "2025-06-01T00:00:00Z",
            },
        ]})

    async with mock_http(handler) as client:
        location = await EpisodeLocator(client).locate(_ctx("https://podcasts.apple.com/us/podcast/x/id42"))

    assert location.episode_title == "New"
    assert location.feed_url is None


@pytest.mark.asyncio
async def test_embedded_player_feed_and_stream(mock_http):
    page = (
        '<meta property="og:title" content="The Interview">'
        '<script>{"feedUrl":"https://feeds.example.com/show.xml","streamUrl":"https://cdn.example.com/live.mp3"}</script>'
    )

    def handler(request):
        return httpx.Response(200, text=FEED)

    async with mock_http(handler) as client:
        location = await EpisodeLocator(client).locate(_ctx("https://player.example.com/e/1", page))

    assert location.kind == "embedded"
    assert [(a.kind, a.url) for a in location.audio] == [
        ("embedded_feed", "https://cdn.example.com/interview.mp3"),
        ("embedded_stream_url", "https://cdn.example.com/live.mp3"),
    ]


@pytest.mark.asyncio
async def test_plain_page_has_no_episode(mock_http):
    async with mock_http(lambda request: httpx.Response(404)) as client:
        location = await EpisodeLocator(client).locate(_ctx("https://example.com/post", "<p>Just words</p>"))
    assert location is None
