"""Extraction strategy selection and result assembly.

Turns fetched HTML (or a scrape payload) into an ``ExtractedLinkContent``:
picks between segment extraction, readability text and a long metadata
description, resolves the transcript, optionally converts to Markdown and
applies the character budget. Every decision is recorded in diagnostics.
"""

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from link_preview.config import Settings
from link_preview.extraction.article import (
    ReadabilityResult,
    extract_article_content,
    extract_plain_text,
    extract_readability,
    sanitize_html_for_markdown,
    to_readability_html,
)
from link_preview.extraction.cleaner import (
    append_note,
    apply_content_budget,
    count_words,
    normalize_for_prompt,
    pick_first_text,
)
from link_preview.extraction.hosts import is_podcast_host
from link_preview.extraction.markdown import MarkdownConverter
from link_preview.extraction.metadata import (
    detect_primary_video,
    extract_json_ld,
    extract_metadata_from_html,
    extract_metadata_from_scrape,
    extract_youtube_short_description,
    is_podcast_like_json_ld_type,
    safe_hostname,
)
from link_preview.extraction.router import is_youtube_url
from link_preview.extraction.scrape import ScrapeResult
from link_preview.models.content import (
    ContentFetchDiagnostics,
    DetectedVideo,
    ExtractedLinkContent,
    ExtractionRequest,
    ExtractionStrategy,
    MarkdownDiagnostics,
    MarkdownMode,
    ScrapeDiagnostics,
)
from link_preview.models.transcript import CacheMode, CacheStatus, TranscriptResolution
from link_preview.progress import ProgressSink

if TYPE_CHECKING:
    from link_preview.transcript.resolver import TranscriptResolver

logger = logging.getLogger(__name__)

BLOCKED_HTML_HINT_PATTERN = re.compile(
    r"access denied|attention required|captcha|cloudflare|enable javascript|forbidden"
    r"|please turn javascript on|verify you are human",
    re.IGNORECASE,
)
_LEADING_CONTROL_PATTERN = re.compile(r"^[\s\x00-\x1f\x7f-\x9f]+")


@dataclass(frozen=True)
class ExtractionThresholds:
    min_html_content_characters: int = 200
    min_readability_content_characters: int = 200
    min_metadata_description_characters: int = 120
    readability_relative_threshold: float = 0.6
    min_html_document_characters_for_fallback: int = 5000

    @classmethod
    def from_settings(cls, settings: Settings) -> "ExtractionThresholds":
        return cls(
            min_html_content_characters=settings.min_html_content_characters,
            min_readability_content_characters=settings.min_readability_content_characters,
            min_metadata_description_characters=settings.min_metadata_description_characters,
            readability_relative_threshold=settings.readability_relative_threshold,
            min_html_document_characters_for_fallback=settings.min_html_document_characters_for_fallback,
        )


@dataclass
class ExtractionContext:
    """Per-request collaborators shared by the strategy functions."""

    request: ExtractionRequest
    resolver: "TranscriptResolver"
    thresholds: ExtractionThresholds
    converter: MarkdownConverter | None = None
    on_progress: ProgressSink | None = None


def should_fallback_to_scrape(html: str, thresholds: ExtractionThresholds) -> bool:
    """True when the page looks bot-blocked, or thin despite a large document.

    Small pages with short content (e.g. example.com) are taken as complete.
    """
    plain_text = normalize_for_prompt(extract_plain_text(html))
    if BLOCKED_HTML_HINT_PATTERN.search(plain_text):
        return True
    segments = normalize_for_prompt(extract_article_content(html))
    if len(segments) >= thresholds.min_html_content_characters:
        return False
    return len(html) >= thresholds.min_html_document_characters_for_fallback


def strip_leading_title(content: str, title: str | None) -> str:
    """Drop a leading copy of the page title from the content."""
    if not content or not title or not title.strip():
        return content
    normalized_title = title.strip()
    trimmed = content.lstrip()
    if not trimmed.lower().startswith(normalized_title.lower()):
        return content
    return _LEADING_CONTROL_PATTERN.sub("", trimmed[len(normalized_title):])


def select_base_content(candidate: str, transcript_text: str | None) -> str:
    """Transcripts replace page text; they are labelled so summaries know the source."""
    if transcript_text:
        normalized = normalize_for_prompt(transcript_text)
        if normalized:
            return f"Transcript:\n{normalized}"
    return candidate


def finalize_content(
    *,
    url: str,
    base_content: str,
    max_characters: int | None,
    title: str | None,
    description: str | None,
    site_name: str | None,
    resolution: TranscriptResolution,
    video: DetectedVideo | None,
    is_video_only: bool,
    diagnostics: ContentFetchDiagnostics,
) -> ExtractedLinkContent:
    """Apply the budget and derive transcript statistics."""
    budget = apply_content_budget(base_content, max_characters)
    text = resolution.text
    metadata: dict[str, Any] = resolution.metadata or {}
    duration = metadata.get("duration_seconds")

    diagnostics.transcript.text_provided = bool(text)
    return ExtractedLinkContent(
        url=url,
        title=title,
        description=description,
        site_name=site_name,
        content=budget.content,
        truncated=budget.truncated,
        total_characters=budget.total_characters,
        word_count=budget.word_count,
        transcript_characters=len(text) if text else None,
        transcript_lines=len([line for line in text.splitlines() if line.strip()]) if text else None,
        transcript_word_count=count_words(text) if text else None,
        transcript_source=resolution.source,
        transcription_provider=metadata.get("transcription_provider"),
        transcript_metadata=resolution.metadata,
        media_duration_seconds=float(duration) if isinstance(duration, (int, float)) else None,
        video=video,
        is_video_only=is_video_only,
        diagnostics=diagnostics,
    )


async def _resolve_transcript(
    ctx: ExtractionContext, url: str, html: str | None
) -> TranscriptResolution:
    return await ctx.resolver.resolve(
        url,
        html,
        cache_mode=ctx.request.cache_mode,
        mode=ctx.request.video_transcript_mode,
        on_progress=ctx.on_progress,
    )


async def _convert_markdown(
    ctx: ExtractionContext,
    url: str,
    html: str,
    readability_html: str | None,
    title: str | None,
    site_name: str | None,
) -> tuple[str | None, MarkdownDiagnostics]:
    request = ctx.request
    if not request.markdown_requested:
        return None, MarkdownDiagnostics()
    if request.markdown_mode == MarkdownMode.OFF:
        return None, MarkdownDiagnostics(requested=True, notes="Markdown conversion disabled")
    if is_youtube_url(url):
        return None, MarkdownDiagnostics(
            requested=True, notes="Skipping Markdown conversion for YouTube URLs"
        )
    if ctx.converter is None:
        return None, MarkdownDiagnostics(
            requested=True, notes="No HTML to Markdown converter configured"
        )

    use_readability = request.markdown_mode == MarkdownMode.READABILITY and readability_html
    source_html = readability_html if use_readability else html
    try:
        markdown = await ctx.converter.convert(
            url=url,
            html=sanitize_html_for_markdown(source_html),
            title=title,
            site_name=site_name,
            timeout_seconds=request.timeout_seconds,
        )
    except Exception as exc:
        logger.warning("Markdown conversion failed for %s: %s", url, exc)
        return None, MarkdownDiagnostics(
            requested=True, notes=f"HTML to Markdown conversion failed: {exc}"
        )

    normalized = normalize_for_prompt(markdown or "")
    if not normalized:
        return None, MarkdownDiagnostics(
            requested=True, notes="HTML to Markdown conversion returned empty content"
        )
    return normalized, MarkdownDiagnostics(
        requested=True,
        used=True,
        provider="llm",
        notes="Readability HTML used for markdown input" if use_readability else None,
    )


async def build_result_from_html(
    ctx: ExtractionContext,
    url: str,
    html: str,
    scrape_diagnostics: ScrapeDiagnostics,
    readability: ReadabilityResult | None = None,
) -> ExtractedLinkContent:
    """Build the result for a directly fetched page (strategy ``html``)."""
    t = ctx.thresholds
    page = extract_metadata_from_html(html, url)
    json_ld = extract_json_ld(html)
    title = pick_first_text([json_ld.title if json_ld else None, page.title])
    description = pick_first_text([json_ld.description if json_ld else None, page.description])
    is_podcast_page = (json_ld is not None and is_podcast_like_json_ld_type(json_ld.type)) or is_podcast_host(url)

    if readability is None:
        readability = await extract_readability(html, url)
    readability_text = normalize_for_prompt(readability.text) if readability and readability.text else ""
    readability_html = to_readability_html(readability)

    segments = normalize_for_prompt(extract_article_content(html))
    readability_segments = (
        normalize_for_prompt(extract_article_content(readability_html)) if readability_html else ""
    )

    def readability_wins(candidate: str) -> bool:
        return len(candidate) >= t.min_readability_content_characters and (
            len(segments) < t.min_html_content_characters
            or len(candidate) >= len(segments) * t.readability_relative_threshold
        )

    prefer_readability_html = readability_wins(readability_segments)
    normalized_segments = readability_segments if prefer_readability_html else segments
    prefer_readability_text = not prefer_readability_html and readability_wins(readability_text)
    prefer_readability = prefer_readability_html or prefer_readability_text
    effective = readability_text if prefer_readability_text else normalized_segments

    description_candidate = normalize_for_prompt(description) if description else ""
    prefer_description = len(description_candidate) >= t.min_metadata_description_characters and (
        is_podcast_page
        or (
            not prefer_readability
            and (
                len(effective) < t.min_html_content_characters
                or len(description_candidate) >= len(effective) * t.readability_relative_threshold
            )
        )
    )
    if prefer_description:
        effective = description_candidate

    resolution = await _resolve_transcript(ctx, url, html)

    youtube_description = extract_youtube_short_description(html) if resolution.text is None else None
    base_candidate = normalize_for_prompt(youtube_description) if youtube_description else effective
    base_content = select_base_content(base_candidate, resolution.text)
    if base_content == normalized_segments:
        base_content = strip_leading_title(base_content, title)

    if resolution.text:
        markdown_diagnostics = MarkdownDiagnostics(
            requested=ctx.request.markdown_requested,
            notes="Transcript content is not converted" if ctx.request.markdown_requested else None,
        )
    else:
        markdown, markdown_diagnostics = await _convert_markdown(
            ctx, url, html, readability_html, title, page.site_name
        )
        if markdown is not None:
            base_content = markdown

    video = detect_primary_video(html, url)
    is_video_only = (
        not resolution.text
        and len(base_content) < t.min_html_content_characters
        and video is not None
    )
    return finalize_content(
        url=url,
        base_content=base_content,
        max_characters=ctx.request.max_characters,
        title=title,
        description=description,
        site_name=page.site_name,
        resolution=resolution,
        video=video,
        is_video_only=is_video_only,
        diagnostics=ContentFetchDiagnostics(
            strategy=ExtractionStrategy.HTML,
            scrape=scrape_diagnostics,
            markdown=markdown_diagnostics,
            transcript=resolution.diagnostics,
        ),
    )


async def build_result_from_scrape(
    ctx: ExtractionContext,
    url: str,
    payload: ScrapeResult,
    scrape_diagnostics: ScrapeDiagnostics,
) -> ExtractedLinkContent | None:
    """Build the result from a scrape payload (strategy ``scrape``).

    Markdown is preferred; a payload with only HTML is run through segment
    extraction instead. Returns None when nothing usable remains.
    """
    t = ctx.thresholds
    html = payload.html
    markdown_text = normalize_for_prompt(payload.markdown or "")
    from_markdown = bool(markdown_text)
    body = markdown_text
    if not body and html:
        body = normalize_for_prompt(extract_article_content(html))
        scrape_diagnostics.notes = append_note(
            scrape_diagnostics.notes, "Scrape returned no markdown; used its HTML"
        )
    if not body:
        scrape_diagnostics.notes = append_note(
            scrape_diagnostics.notes, "Scrape content normalized to empty text"
        )
        return None

    json_ld = extract_json_ld(html) if html else None
    is_podcast_page = (json_ld is not None and is_podcast_like_json_ld_type(json_ld.type)) or is_podcast_host(url)
    page = extract_metadata_from_html(html, url) if html else None
    scraped = extract_metadata_from_scrape(payload.metadata)

    title = pick_first_text([json_ld.title if json_ld else None, scraped.title, page.title if page else None])
    description = pick_first_text([
        json_ld.description if json_ld else None,
        scraped.description,
        page.description if page else None,
    ])
    site_name = pick_first_text([scraped.site_name, page.site_name if page else None, safe_hostname(url)])

    resolution = await _resolve_transcript(ctx, url, html)

    description_candidate = normalize_for_prompt(description) if description else ""
    prefer_description = len(description_candidate) >= t.min_metadata_description_characters and (
        is_podcast_page
        or len(body) < t.min_html_content_characters
        or len(description_candidate) >= len(body) * t.readability_relative_threshold
    )
    base_content = select_base_content(description_candidate if prefer_description else body, resolution.text)

    scrape_diagnostics.used = True
    if ctx.request.cache_mode == CacheMode.BYPASS:
        scrape_diagnostics.cache_status = CacheStatus.BYPASSED

    markdown_requested = ctx.request.markdown_requested
    markdown_used = markdown_requested and from_markdown and ctx.request.markdown_mode != MarkdownMode.OFF
    markdown_note = None
    if markdown_requested and not markdown_used:
        markdown_note = (
            "Markdown conversion disabled"
            if ctx.request.markdown_mode == MarkdownMode.OFF
            else "Scrape payload had no markdown"
        )
    markdown_diagnostics = MarkdownDiagnostics(
        requested=markdown_requested,
        used=markdown_used,
        provider="scrape" if markdown_used else None,
        notes=markdown_note,
    )

    video = detect_primary_video(html, url) if html else None
    is_video_only = (
        not resolution.text and len(body) < t.min_html_content_characters and video is not None
    )
    return finalize_content(
        url=url,
        base_content=base_content,
        max_characters=ctx.request.max_characters,
        title=title,
        description=description,
        site_name=site_name,
        resolution=resolution,
        video=video,
        is_video_only=is_video_only,
        diagnostics=ContentFetchDiagnostics(
            strategy=ExtractionStrategy.SCRAPE,
            scrape=scrape_diagnostics,
            markdown=markdown_diagnostics,
            transcript=resolution.diagnostics,
        ),
    )
