"""Tests for LinkPreviewClient dispatch and the website fetch/scrape strategy."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from link_preview.client import LinkPreviewClient
from link_preview.errors import AllProvidersExhausted, FetchFailed, ProviderUnavailable
from link_preview.extraction import router
from link_preview.extraction.scrape import ScrapeResult
from link_preview.models.content import ExtractionRequest, ExtractionStrategy, ScrapeMode
from link_preview.models.transcript import TranscriptResolution, TranscriptSource

PARAGRAPH = "The quick brown fox jumps over the lazy dog near the river bank. " * 5
ARTICLE_HTML = f"<html><head><title>Foxes</title></head><body><h1>Hello world</h1><p>{PARAGRAPH}</p></body></html>"
SCRAPED_MARKDOWN = "Scraped article body with plenty of real sentences. " * 6


def _resolver(text=None, source=TranscriptSource.UNAVAILABLE, metadata=None, notes=None):
    resolution = TranscriptResolution(text=text, source=source, metadata=metadata)
    resolution.diagnostics.notes = notes
    return SimpleNamespace(resolve=AsyncMock(return_value=resolution))


def _scraper(markdown=SCRAPED_MARKDOWN):
    payload = ScrapeResult(markdown=markdown) if markdown else None
    return SimpleNamespace(scrape=AsyncMock(return_value=payload))


def _preview(client, resolver=None, scraper=None, stt_available=True):
    return LinkPreviewClient(
        client,
        resolver or _resolver(),
        SimpleNamespace(available=stt_available),
        scraper=scraper,
    )


def _site(pages):
    """Handler serving ``pages`` by path for GET and HEAD; anything else is a 404."""

    def handler(request):
        page = pages.get(request.url.path)
        if page is None:
            return httpx.Response(404)
        if isinstance(page, httpx.Response):
            return page
        return httpx.Response(200, text=page, headers={"content-type": "text/html; charset=utf-8"})

    return handler


@pytest.fixture(autouse=True)
def isolate():
    router._probe_cache.clear()
    with (
        patch("link_preview.client.extract_readability", new_callable=AsyncMock, return_value=None),
        patch("link_preview.extraction.strategy.extract_readability", new_callable=AsyncMock, return_value=None),
    ):
        yield


@pytest.mark.asyncio
async def test_website_follows_redirects(mock_http):
    handler = _site({
        "/old": httpx.Response(301, headers={"location": "https://example.com/article"}),
        "/article": ARTICLE_HTML,
    })
    async with mock_http(handler) as client:
        result = await _preview(client).fetch_link_content(ExtractionRequest(url="https://example.com/old"))

    assert result.url == "https://example.com/article"
    assert result.title == "Foxes"
    assert result.diagnostics.strategy == ExtractionStrategy.HTML
    assert "quick brown fox" in result.content
    assert result.diagnostics.scrape.attempted is False


@pytest.mark.asyncio
async def test_scrape_always_skips_page_fetch(mock_http):
    methods = []

    def handler(request):
        methods.append(request.method)
        return httpx.Response(200, headers={"content-type": "text/html"})

    scraper = _scraper()
    async with mock_http(handler) as client:
        result = await _preview(client, scraper=scraper).fetch_link_content(
            ExtractionRequest(url="https://example.com/article", scrape_mode=ScrapeMode.ALWAYS)
        )

    assert result.diagnostics.strategy == ExtractionStrategy.SCRAPE
    assert result.diagnostics.scrape.used is True
    assert "Scraped article body" in result.content
    assert "GET" not in methods
    scraper.scrape.assert_awaited_once()


@pytest.mark.asyncio
async def test_blocked_page_falls_back_to_scrape(mock_http):
    blocked = "<html><body><h1>Attention Required!</h1><p>Please verify you are human to continue reading.</p></body></html>"
    async with mock_http(_site({"/article": blocked})) as client:
        result = await _preview(client, scraper=_scraper()).fetch_link_content(
            ExtractionRequest(url="https://example.com/article")
        )

    assert result.diagnostics.strategy == ExtractionStrategy.SCRAPE
    assert "Scraped article body" in result.content


@pytest.mark.asyncio
async def test_scrape_off_keeps_blocked_html(mock_http):
    blocked = "<html><body><p>Please verify you are human to continue reading this article.</p></body></html>"
    scraper = _scraper()
    async with mock_http(_site({"/article": blocked})) as client:
        result = await _preview(client, scraper=scraper).fetch_link_content(
            ExtractionRequest(url="https://example.com/article", scrape_mode=ScrapeMode.OFF)
        )

    assert result.diagnostics.strategy == ExtractionStrategy.HTML
    scraper.scrape.assert_not_awaited()


@pytest.mark.asyncio
async def test_fetch_failure_falls_back_to_scrape(mock_http):
    async with mock_http(_site({"/article": httpx.Response(500)})) as client:
        result = await _preview(client, scraper=_scraper()).fetch_link_content(
            ExtractionRequest(url="https://example.com/article")
        )

    assert result.diagnostics.strategy == ExtractionStrategy.SCRAPE


@pytest.mark.asyncio
async def test_fetch_failure_without_scrape_raises(mock_http):
    async with mock_http(_site({"/article": httpx.Response(500)})) as client:
        with pytest.raises(FetchFailed) as exc_info:
            await _preview(client).fetch_link_content(ExtractionRequest(url="https://example.com/article"))

    assert exc_info.value.status == 500


@pytest.mark.asyncio
async def test_fetch_failure_with_scrape_off_raises(mock_http):
    scraper = _scraper()
    async with mock_http(_site({"/article": httpx.Response(502)})) as client:
        with pytest.raises(FetchFailed):
            await _preview(client, scraper=scraper).fetch_link_content(
                ExtractionRequest(url="https://example.com/article", scrape_mode=ScrapeMode.OFF)
            )

    scraper.scrape.assert_not_awaited()


@pytest.mark.asyncio
async def test_social_post_uses_reader_text(mock_http):
    def handler(request):
        raise AssertionError(f"unexpected request to {request.url}")

    resolver = _resolver(
        text="Shipping   the new release today.",
        source=TranscriptSource.SOCIAL_READER,
        metadata={"provider": "social-reader", "author_name": "Some One", "author_username": "someone"},
    )
    async with mock_http(handler) as client:
        result = await _preview(client, resolver=resolver).fetch_link_content(
            ExtractionRequest(url="https://x.com/someone/status/1234567890")
        )

    assert result.content == "Shipping the new release today."
    assert result.title == "Some One"
    assert result.diagnostics.strategy == ExtractionStrategy.SOCIAL
    assert result.transcript_source == TranscriptSource.SOCIAL_READER


@pytest.mark.asyncio
async def test_blocked_social_post_raises(mock_http):
    """No reader text and an error page from the host itself."""
    page = "<html><body><p>Something went wrong, but don't fret. Let's give it another shot.</p></body></html>"
    resolver = _resolver()
    async with mock_http(_site({"/someone/status/1234567890": page})) as client:
        with pytest.raises(AllProvidersExhausted):
            await _preview(client, resolver=resolver).fetch_link_content(
                ExtractionRequest(url="https://x.com/someone/status/1234567890")
            )

    resolver.resolve.assert_awaited_once()


@pytest.mark.asyncio
async def test_spotify_without_speech_to_text(mock_http):
    resolver = _resolver()
    async with mock_http(_site({})) as client:
        with pytest.raises(ProviderUnavailable):
            await _preview(client, resolver=resolver, stt_available=False).fetch_link_content(
                ExtractionRequest(url="https://open.spotify.com/episode/4rOoJ6Egrf8K2IrywzwOMk")
            )

    resolver.resolve.assert_not_awaited()


@pytest.mark.asyncio
async def test_spotify_episode_transcribed(mock_http):
    resolver = _resolver(
        text="Welcome to the show. Today we talk about foxes.",
        source=TranscriptSource.SPEECH_TO_TEXT,
        metadata={"provider": "episode-audio", "episode_title": "Fox Talk", "show_title": "The Show"},
    )
    async with mock_http(_site({})) as client:
        result = await _preview(client, resolver=resolver).fetch_link_content(
            ExtractionRequest(url="https://open.spotify.com/episode/4rOoJ6Egrf8K2IrywzwOMk")
        )

    assert result.content == "Transcript:\nWelcome to the show. Today we talk about foxes."
    assert result.title == "Fox Talk"
    assert result.transcript_source == TranscriptSource.SPEECH_TO_TEXT
    assert resolver.resolve.call_args.args == (
        "https://open.spotify.com/episode/4rOoJ6Egrf8K2IrywzwOMk",
        None,
    )


@pytest.mark.asyncio
async def test_spotify_episode_exhausted(mock_http):
    resolver = _resolver(notes="Spotify episode audio appears DRM-protected")
    async with mock_http(_site({})) as client:
        with pytest.raises(AllProvidersExhausted, match="DRM-protected"):
            await _preview(client, resolver=resolver).fetch_link_content(
                ExtractionRequest(url="https://podcasts.apple.com/us/podcast/the-show/id42?i=1001")
            )


@pytest.mark.asyncio
async def test_local_file_is_an_asset(tmp_path, mock_http):
    path = tmp_path / "notes.txt"
    path.write_text("# Notes\n\nSome   local text.")
    async with mock_http(_site({})) as client:
        result = await _preview(client).fetch_link_content(ExtractionRequest(url=str(path)))

    assert result.diagnostics.strategy == ExtractionStrategy.ASSET
    assert "Some local text." in result.content


@pytest.mark.asyncio
async def test_from_settings_owns_and_closes_client(settings):
    async with LinkPreviewClient.from_settings(settings) as preview:
        assert preview.scraper is None
        assert preview.converter is None
        assert not preview.speech_to_text.available

    assert preview.client.is_closed


@pytest.mark.asyncio
async def test_from_settings_leaves_shared_client_open(settings, mock_http):
    async with mock_http(_site({})) as client:
        preview = LinkPreviewClient.from_settings(settings, client=client)
        await preview.aclose()
        assert not client.is_closed
