"""Tests for the Firecrawl scraper and the scrape attempt wrapper."""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock

import httpx
import pytest

from link_preview.cache import ContentCache
from link_preview.extraction.scrape import (
    FIRECRAWL_SCRAPE_URL,
    FirecrawlScraper,
    ScrapeFailed,
    ScrapeResult,
    fetch_with_scrape,
)
from link_preview.models.transcript import CacheMode, CacheStatus


def _firecrawl_handler(calls, payload=None, status=200):
    def handler(request):
        calls.append(json.loads(request.content))
        assert str(request.url) == FIRECRAWL_SCRAPE_URL
        assert request.headers["authorization"] == "Bearer fc-key"
        body = payload if payload is not None else {
            "success": True,
            "data": {"markdown": "# Page", "html": "<h1>Page</h1>", "metadata": {"title": "Page"}},
        }
        return httpx.Response(status, json=body)

    return handler


@pytest.mark.asyncio
async def test_firecrawl_scrape_caches_payload(mock_http):
    calls = []
    with ContentCache(":memory:", max_bytes=100_000) as cache:
        async with mock_http(_firecrawl_handler(calls)) as client:
            scraper = FirecrawlScraper("fc-key", client, cache=cache, ttl_seconds=60)
            first = await scraper.scrape("https://example.com", cache_mode=CacheMode.DEFAULT, timeout_seconds=5)
            second = await scraper.scrape("https://example.com", cache_mode=CacheMode.DEFAULT, timeout_seconds=5)

    assert first.markdown == "# Page"
    assert first.cache_status == CacheStatus.MISS
    assert second.cache_status == CacheStatus.HIT
    assert second.metadata == {"title": "Page"}
    assert len(calls) == 1
    assert calls[0]["formats"] == ["markdown", "html"]


@pytest.mark.asyncio
async def test_firecrawl_bypass_skips_cache(mock_http):
    calls = []
    with ContentCache(":memory:", max_bytes=100_000) as cache:
        async with mock_http(_firecrawl_handler(calls)) as client:
            scraper = FirecrawlScraper("fc-key", client, cache=cache, ttl_seconds=60)
            await scraper.scrape("https://example.com", cache_mode=CacheMode.BYPASS, timeout_seconds=5)
            result = await scraper.scrape("https://example.com", cache_mode=CacheMode.BYPASS, timeout_seconds=5)

    assert result.cache_status == CacheStatus.BYPASSED
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_firecrawl_error_status_raises(mock_http):
    async with mock_http(_firecrawl_handler([], payload={"error": "quota"}, status=402)) as client:
        scraper = FirecrawlScraper("fc-key", client)
        with pytest.raises(ScrapeFailed, match="quota"):
            await scraper.scrape("https://example.com", cache_mode=CacheMode.DEFAULT, timeout_seconds=5)


@pytest.mark.asyncio
async def test_firecrawl_empty_payload_is_none(mock_http):
    payload = {"success": True, "data": {"markdown": " ", "html": ""}}
    async with mock_http(_firecrawl_handler([], payload=payload)) as client:
        scraper = FirecrawlScraper("fc-key", client)
        assert await scraper.scrape("https://example.com", cache_mode=CacheMode.DEFAULT, timeout_seconds=5) is None


@pytest.mark.asyncio
async def test_fetch_with_scrape_records_events():
    scraper = SimpleNamespace(scrape=AsyncMock(return_value=ScrapeResult(markdown="md", html=None)))
    events = []
    attempt = await fetch_with_scrape(
        "https://example.com", scraper, timeout_seconds=5, cache_mode=CacheMode.DEFAULT, on_progress=events.append
    )
    assert attempt.payload.markdown == "md"
    assert attempt.diagnostics.attempted is True
    assert [e.kind for e in events] == ["scrape-start", "scrape-done"]
    assert events[-1].ok is True
    assert events[-1].markdown_bytes == 2


@pytest.mark.asyncio
async def test_fetch_with_scrape_never_raises():
    scraper = SimpleNamespace(scrape=AsyncMock(side_effect=ScrapeFailed("boom")))
    attempt = await fetch_with_scrape(
        "https://example.com", scraper, timeout_seconds=5, cache_mode=CacheMode.DEFAULT
    )
    assert attempt.payload is None
    assert "boom" in attempt.diagnostics.notes


@pytest.mark.asyncio
async def test_fetch_with_scrape_skips_youtube_and_unconfigured():
    scraper = SimpleNamespace(scrape=AsyncMock())
    youtube = await fetch_with_scrape(
        "https://www.youtube.com/watch?v=dQw4w9WgXcQ", scraper, timeout_seconds=5, cache_mode=CacheMode.DEFAULT
    )
    missing = await fetch_with_scrape(
        "https://example.com", None, timeout_seconds=5, cache_mode=CacheMode.BYPASS
    )
    scraper.scrape.assert_not_called()
    assert youtube.diagnostics.attempted is False
    assert missing.diagnostics.cache_status == CacheStatus.BYPASSED
    assert "not configured" in missing.diagnostics.notes


@pytest.mark.asyncio
async def test_firecrawl_transport_error_is_scrape_failed(mock_http):
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    async with mock_http(handler) as client:
        with pytest.raises(ScrapeFailed, match="refused"):
            await FirecrawlScraper("fc-key", client).scrape(
                "https://example.com", cache_mode=CacheMode.DEFAULT, timeout_seconds=5
            )
