"""Link preview client: one call from a URL or local path to budgeted content.

Public API:
    LinkPreviewClient.from_settings(settings, client=None, cache=None)
    await LinkPreviewClient.fetch_link_content(request, on_progress=None)
        -> ExtractedLinkContent

Dispatch order: direct assets and local files, podcast platforms with no
readable page (Spotify, Apple Podcasts), social posts, then websites
through the HTML fetch / scrape fallback strategy.
"""

import logging

import httpx

from link_preview.cache import ContentCache, TranscriptCache
from link_preview.config import Settings, get_settings
from link_preview.errors import (
    AllProvidersExhausted,
    FetchFailed,
    FetchTimeout,
    ProviderUnavailable,
)
from link_preview.extraction.article import extract_readability
from link_preview.extraction.asset import extract_asset
from link_preview.extraction.cleaner import normalize_for_prompt, pick_first_text
from link_preview.extraction.fetcher import fetch_html_document
from link_preview.extraction.hosts import bare_hostname
from link_preview.extraction.markdown import (
    GeminiMarkdownConverter,
    MarkdownConverter,
    get_gemini_client,
)
from link_preview.extraction.metadata import safe_hostname
from link_preview.extraction.router import (
    UrlKind,
    classify_url,
    extract_apple_podcast_ids,
    extract_spotify_episode_id,
    is_social_status_url,
)
from link_preview.extraction.scrape import (
    FirecrawlScraper,
    ScrapeService,
    fetch_with_scrape,
    initial_scrape_diagnostics,
)
from link_preview.extraction.social import is_blocked_post_content
from link_preview.extraction.strategy import (
    ExtractionContext,
    ExtractionThresholds,
    build_result_from_html,
    build_result_from_scrape,
    finalize_content,
    select_base_content,
    should_fallback_to_scrape,
)
from link_preview.models.content import (
    ContentFetchDiagnostics,
    ExtractedLinkContent,
    ExtractionRequest,
    ExtractionStrategy,
    MarkdownDiagnostics,
    ScrapeDiagnostics,
    ScrapeMode,
)
from link_preview.models.transcript import TranscriptResolution
from link_preview.progress import ProgressSink
from link_preview.transcript.resolver import TranscriptResolver
from link_preview.transcription.whisper import NO_BACKEND_MESSAGE, SpeechToText

logger = logging.getLogger(__name__)

BLOCKED_SOCIAL_HOSTS = frozenset({"x.com", "twitter.com", "mobile.twitter.com"})


class _ResolvedTranscript:
    """Stands in for the resolver once a chain has already run for the URL."""

    def __init__(self, resolution: TranscriptResolution):
        self.resolution = resolution

    async def resolve(self, url, html, **kwargs) -> TranscriptResolution:
        return self.resolution


class LinkPreviewClient:
    """Composes classification, fetching, extraction and transcript resolution.

    The HTTP client and cache are shared across calls. A client built by
    ``from_settings`` without an explicit ``client`` owns its
    ``httpx.AsyncClient`` and closes it in ``aclose``.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        resolver: TranscriptResolver,
        speech_to_text: SpeechToText,
        scraper: ScrapeService | None = None,
        converter: MarkdownConverter | None = None,
        thresholds: ExtractionThresholds | None = None,
        owns_client: bool = False,
    ):
        self.client = client
        self.resolver = resolver
        self.speech_to_text = speech_to_text
        self.scraper = scraper
        self.converter = converter
        self.thresholds = thresholds or ExtractionThresholds()
        self._owns_client = owns_client

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        client: httpx.AsyncClient | None = None,
        cache: ContentCache | None = None,
    ) -> "LinkPreviewClient":
        """Wire the default collaborators from configuration.

        Optional services (Firecrawl, Gemini) are only built when their key
        is set. Without a ``cache`` the client runs uncached.
        """
        settings = settings or get_settings()
        owns_client = client is None
        if client is None:
            client = httpx.AsyncClient(timeout=settings.default_timeout_seconds)

        scraper = None
        if settings.firecrawl_api_key:
            scraper = FirecrawlScraper(
                settings.firecrawl_api_key,
                client,
                cache=cache,
                ttl_seconds=settings.content_cache_ttl_seconds,
            )
        converter = None
        if settings.gemini_api_key:
            converter = GeminiMarkdownConverter(get_gemini_client(), settings.gemini_model)

        transcript_cache = (
            TranscriptCache(cache, settings.transcript_cache_ttl_seconds) if cache is not None else None
        )
        speech_to_text = SpeechToText.from_settings(settings, client)
        resolver = TranscriptResolver.from_settings(
            settings,
            client,
            cache=transcript_cache,
            scraper=scraper,
            speech_to_text=speech_to_text,
        )
        return cls(
            client,
            resolver,
            speech_to_text,
            scraper=scraper,
            converter=converter,
            thresholds=ExtractionThresholds.from_settings(settings),
            owns_client=owns_client,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> "LinkPreviewClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def fetch_link_content(
        self,
        request: ExtractionRequest,
        on_progress: ProgressSink | None = None,
    ) -> ExtractedLinkContent:
        """Extract normalized, budgeted content for ``request.url``.

        Transcript chain exhaustion is reported in diagnostics, not raised.

        Raises:
            FetchTimeout: The page fetch timed out and no scrape could stand in.
            FetchFailed: The page fetch failed and no scrape could stand in.
            UnsupportedContentType: The page or asset is not readable text or media.
            ProviderUnavailable: Media needs speech-to-text and no backend is configured.
            AllProvidersExhausted: A source with no readable page produced no content.
        """
        url = request.url
        ctx = ExtractionContext(
            request=request,
            resolver=self.resolver,
            thresholds=self.thresholds,
            converter=self.converter,
            on_progress=on_progress,
        )

        if await classify_url(url, self.client) == UrlKind.ASSET:
            return await extract_asset(
                url,
                request,
                client=self.client,
                speech_to_text=self.speech_to_text,
                on_progress=on_progress,
            )
        if extract_spotify_episode_id(url) or extract_apple_podcast_ids(url):
            return await self._extract_podcast_platform(ctx)
        if is_social_status_url(url):
            return await self._extract_social(ctx)
        return await self._extract_website(ctx)

    async def _extract_podcast_platform(self, ctx: ExtractionContext) -> ExtractedLinkContent:
        """Spotify and Apple Podcasts pages carry no episode text; transcribe the audio."""
        request = ctx.request
        if not self.speech_to_text.available:
            raise ProviderUnavailable(NO_BACKEND_MESSAGE)

        resolution = await ctx.resolver.resolve(
            request.url,
            None,
            cache_mode=request.cache_mode,
            mode=request.video_transcript_mode,
            on_progress=ctx.on_progress,
        )
        if not resolution.text:
            raise AllProvidersExhausted(
                f"Could not transcribe {request.url}: "
                + (resolution.diagnostics.notes or "no transcript provider produced text")
            )

        metadata = resolution.metadata or {}
        return finalize_content(
            url=request.url,
            base_content=select_base_content("", resolution.text),
            max_characters=request.max_characters,
            title=pick_first_text([metadata.get("episode_title"), metadata.get("show_title")]),
            description=None,
            site_name=safe_hostname(request.url),
            resolution=resolution,
            video=None,
            is_video_only=False,
            diagnostics=ContentFetchDiagnostics(
                strategy=ExtractionStrategy.HTML,
                scrape=initial_scrape_diagnostics(request.cache_mode),
                markdown=_transcript_markdown_diagnostics(request),
                transcript=resolution.diagnostics,
            ),
        )

    async def _extract_social(self, ctx: ExtractionContext) -> ExtractedLinkContent:
        """Social readers first; the post page itself is the last resort."""
        request = ctx.request
        resolution = await ctx.resolver.resolve(
            request.url,
            None,
            cache_mode=request.cache_mode,
            mode=request.video_transcript_mode,
            on_progress=ctx.on_progress,
        )

        if resolution.text:
            metadata = resolution.metadata or {}
            username = metadata.get("author_username")
            return finalize_content(
                url=request.url,
                base_content=normalize_for_prompt(resolution.text),
                max_characters=request.max_characters,
                title=pick_first_text([metadata.get("author_name"), f"@{username}" if username else None]),
                description=None,
                site_name=safe_hostname(request.url),
                resolution=resolution,
                video=None,
                is_video_only=False,
                diagnostics=ContentFetchDiagnostics(
                    strategy=ExtractionStrategy.SOCIAL,
                    scrape=initial_scrape_diagnostics(request.cache_mode),
                    markdown=_transcript_markdown_diagnostics(request),
                    transcript=resolution.diagnostics,
                ),
            )

        fallback_ctx = ExtractionContext(
            request=request,
            resolver=_ResolvedTranscript(resolution),
            thresholds=ctx.thresholds,
            converter=ctx.converter,
            on_progress=ctx.on_progress,
        )
        result = await self._extract_website(fallback_ctx)
        if bare_hostname(request.url) in BLOCKED_SOCIAL_HOSTS and (
            not result.content or is_blocked_post_content(result.content)
        ):
            raise AllProvidersExhausted(
                f"Unable to read {request.url}: the post page is blocked and no social reader returned text"
            )
        return result

    async def _scrape(self, ctx: ExtractionContext, url: str) -> tuple[ExtractedLinkContent | None, ScrapeDiagnostics]:
        request = ctx.request
        attempt = await fetch_with_scrape(
            url,
            self.scraper,
            timeout_seconds=request.timeout_seconds,
            cache_mode=request.cache_mode,
            on_progress=ctx.on_progress,
        )
        if attempt.payload is None:
            return None, attempt.diagnostics
        result = await build_result_from_scrape(ctx, url, attempt.payload, attempt.diagnostics)
        return result, attempt.diagnostics

    async def _extract_website(self, ctx: ExtractionContext) -> ExtractedLinkContent:
        request = ctx.request
        url = request.url
        scrape_diagnostics = initial_scrape_diagnostics(request.cache_mode)

        if request.scrape_mode == ScrapeMode.ALWAYS:
            result, scrape_diagnostics = await self._scrape(ctx, url)
            if result is not None:
                return result

        try:
            document = await fetch_html_document(
                self.client, url, request.timeout_seconds, on_progress=ctx.on_progress
            )
        except (FetchTimeout, FetchFailed) as exc:
            if request.scrape_mode == ScrapeMode.OFF or scrape_diagnostics.attempted:
                raise
            logger.warning("Page fetch failed for %s, trying scrape: %s", url, exc)
            result, _ = await self._scrape(ctx, url)
            if result is None:
                raise
            return result

        final_url = document.url
        readability = None
        if request.scrape_mode == ScrapeMode.AUTO and should_fallback_to_scrape(
            document.html, ctx.thresholds
        ):
            readability = await extract_readability(document.html, final_url)
            readability_text = (
                normalize_for_prompt(readability.text) if readability and readability.text else ""
            )
            if len(readability_text) < ctx.thresholds.min_readability_content_characters:
                logger.info("Thin or blocked HTML for %s, falling back to scrape", final_url)
                result, scrape_diagnostics = await self._scrape(ctx, final_url)
                if result is not None:
                    return result

        return await build_result_from_html(
            ctx, final_url, document.html, scrape_diagnostics, readability
        )


def _transcript_markdown_diagnostics(request: ExtractionRequest) -> MarkdownDiagnostics:
    return MarkdownDiagnostics(
        requested=request.markdown_requested,
        notes="Transcript content is not converted" if request.markdown_requested else None,
    )
