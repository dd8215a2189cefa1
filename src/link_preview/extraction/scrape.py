"""Managed scrape fallback (Firecrawl) and its diagnostics."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from link_preview.cache import CONTENT_NAMESPACE, ContentCache
from link_preview.errors import CacheUnavailable, LinkPreviewError
from link_preview.extraction.cleaner import append_note
from link_preview.extraction.router import is_youtube_url
from link_preview.models.content import ScrapeDiagnostics
from link_preview.models.progress import ScrapeDone, ScrapeStart
from link_preview.models.transcript import CacheMode, CacheStatus
from link_preview.progress import ProgressSink, emit_progress

logger = logging.getLogger(__name__)

FIRECRAWL_SCRAPE_URL = "https://api.firecrawl.dev/v1/scrape"


@dataclass
class ScrapeResult:
    markdown: str | None
    html: str | None = None
    metadata: dict[str, Any] | None = None
    cache_status: CacheStatus = CacheStatus.UNKNOWN


class ScrapeService(Protocol):
    async def scrape(
        self, url: str, *, cache_mode: CacheMode, timeout_seconds: float
    ) -> ScrapeResult | None: ...


class ScrapeFailed(LinkPreviewError):
    """The scrape service answered with an error."""


class FirecrawlScraper:
    """Firecrawl ``/v1/scrape`` client requesting markdown and HTML.

    Payloads are cached in the ``content`` namespace when a cache is given;
    ``CacheMode.BYPASS`` skips both the read and the write.
    """

    def __init__(
        self,
        api_key: str,
        client: httpx.AsyncClient,
        cache: ContentCache | None = None,
        ttl_seconds: float | None = None,
    ):
        self.api_key = api_key
        self.client = client
        self.cache = cache
        self.ttl_seconds = ttl_seconds

    async def scrape(
        self, url: str, *, cache_mode: CacheMode, timeout_seconds: float
    ) -> ScrapeResult | None:
        cache_key = f"firecrawl|{url}"
        use_cache = self.cache is not None and cache_mode != CacheMode.BYPASS
        cache_status = CacheStatus.BYPASSED if cache_mode == CacheMode.BYPASS else CacheStatus.UNKNOWN

        if use_cache:
            try:
                lookup = await asyncio.to_thread(self.cache.lookup, CONTENT_NAMESPACE, cache_key)
                cache_status = lookup.status
                if lookup.status == CacheStatus.HIT:
                    value = lookup.value
                    return ScrapeResult(
                        markdown=value.get("markdown"),
                        html=value.get("html"),
                        metadata=value.get("metadata"),
                        cache_status=CacheStatus.HIT,
                    )
            except CacheUnavailable as exc:
                logger.warning("Scrape cache read failed for %s: %s", url, exc)
                cache_status = CacheStatus.FALLBACK
                use_cache = False

        try:
            response = await self.client.post(
                FIRECRAWL_SCRAPE_URL,
                headers={"Authorization": f"Bearer {self.api_key}"},
                json={
                    "url": url,
                    "formats": ["markdown", "html"],
                    "onlyMainContent": True,
                    "proxy": "auto",
                    "maxAge": 0,
                },
                timeout=timeout_seconds,
            )
        except httpx.TimeoutException as exc:
            raise ScrapeFailed("Firecrawl request timed out") from exc
        except httpx.HTTPError as exc:
            raise ScrapeFailed(f"Firecrawl request failed: {exc}") from exc

        try:
            payload = response.json()
        except ValueError:
            payload = None
        if not response.is_success:
            message = f": {payload['error']}" if isinstance(payload, dict) and payload.get("error") else ""
            raise ScrapeFailed(f"Firecrawl request failed ({response.status_code}){message}")
        if not isinstance(payload, dict) or not payload.get("success"):
            error = payload.get("error") if isinstance(payload, dict) else None
            raise ScrapeFailed(error or "Firecrawl response was not successful")

        data = payload.get("data") or {}
        markdown = data.get("markdown") if isinstance(data.get("markdown"), str) else None
        html = data.get("html") if isinstance(data.get("html"), str) else None
        metadata = data.get("metadata") if isinstance(data.get("metadata"), dict) else None
        if not (markdown and markdown.strip()) and not (html and html.strip()):
            return None

        if use_cache:
            value = {"markdown": markdown, "html": html, "metadata": metadata}
            try:
                await asyncio.to_thread(
                    self.cache.set, CONTENT_NAMESPACE, cache_key, value, self.ttl_seconds
                )
            except CacheUnavailable as exc:
                logger.warning("Scrape cache write failed for %s: %s", url, exc)
                cache_status = CacheStatus.FALLBACK

        return ScrapeResult(markdown=markdown, html=html, metadata=metadata, cache_status=cache_status)


@dataclass
class ScrapeAttempt:
    payload: ScrapeResult | None
    diagnostics: ScrapeDiagnostics = field(default_factory=ScrapeDiagnostics)


def initial_scrape_diagnostics(cache_mode: CacheMode) -> ScrapeDiagnostics:
    return ScrapeDiagnostics(
        cache_mode=cache_mode,
        cache_status=CacheStatus.BYPASSED if cache_mode == CacheMode.BYPASS else CacheStatus.UNKNOWN,
    )


async def fetch_with_scrape(
    url: str,
    scraper: ScrapeService | None,
    *,
    timeout_seconds: float,
    cache_mode: CacheMode,
    on_progress: ProgressSink | None = None,
) -> ScrapeAttempt:
    """Run the scrape service once, recording what happened in diagnostics.

    Never raises: service errors become notes.
    """
    diagnostics = initial_scrape_diagnostics(cache_mode)
    if is_youtube_url(url):
        diagnostics.notes = append_note(diagnostics.notes, "Skipped scrape for YouTube URL")
        return ScrapeAttempt(None, diagnostics)
    if scraper is None:
        diagnostics.notes = append_note(diagnostics.notes, "Scrape service is not configured")
        return ScrapeAttempt(None, diagnostics)

    diagnostics.attempted = True
    emit_progress(on_progress, ScrapeStart(url=url))
    try:
        payload = await scraper.scrape(url, cache_mode=cache_mode, timeout_seconds=timeout_seconds)
    except Exception as exc:
        logger.warning("Scrape failed for %s: %s", url, exc)
        diagnostics.notes = append_note(diagnostics.notes, f"Scrape error: {exc}")
        emit_progress(on_progress, ScrapeDone(url=url, ok=False))
        return ScrapeAttempt(None, diagnostics)

    if payload is None:
        diagnostics.notes = append_note(diagnostics.notes, "Scrape returned no content payload")
        emit_progress(on_progress, ScrapeDone(url=url, ok=False))
        return ScrapeAttempt(None, diagnostics)

    if payload.cache_status != CacheStatus.UNKNOWN:
        diagnostics.cache_status = payload.cache_status
    emit_progress(
        on_progress,
        ScrapeDone(
            url=url,
            ok=True,
            markdown_bytes=len(payload.markdown.encode("utf-8")) if payload.markdown else None,
            html_bytes=len(payload.html.encode("utf-8")) if payload.html else None,
        ),
    )
    return ScrapeAttempt(payload, diagnostics)
