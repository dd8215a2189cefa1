"""Direct assets and local files: PDFs, text documents and audio/video media."""

import asyncio
import logging
import mimetypes
from pathlib import Path
from urllib.parse import unquote, urlparse

import httpx

from link_preview.errors import (
    AllProvidersExhausted,
    FetchFailed,
    FetchTimeout,
    ProviderUnavailable,
    UnsupportedContentType,
)
from link_preview.extraction.cleaner import normalize_for_prompt
from link_preview.extraction.pdf import MAX_PDF_SIZE_BYTES, download_pdf, extract_pdf_text
from link_preview.extraction.router import is_local_path
from link_preview.extraction.strategy import finalize_content, select_base_content
from link_preview.models.content import (
    ContentFetchDiagnostics,
    DetectedVideo,
    ExtractedLinkContent,
    ExtractionRequest,
    ExtractionStrategy,
    MarkdownDiagnostics,
    ScrapeDiagnostics,
)
from link_preview.models.transcript import (
    TranscriptDiagnostics,
    TranscriptResolution,
    TranscriptSource,
)
from link_preview.progress import ProgressSink
from link_preview.transcription.media import transcribe_remote_media
from link_preview.transcription.whisper import (
    NO_BACKEND_MESSAGE,
    SpeechToText,
    TranscriptionOutcome,
)

logger = logging.getLogger(__name__)

MAX_TEXT_ASSET_BYTES = MAX_PDF_SIZE_BYTES

_TEXT_MEDIA_TYPES = {"application/json", "application/xml", "application/x-yaml"}


def local_path_for(target: str) -> Path:
    parsed = urlparse(target)
    if parsed.scheme == "file":
        return Path(unquote(parsed.path))
    return Path(target).expanduser()


def media_kind(media_type: str | None) -> str | None:
    """``pdf``, ``text``, ``media`` or None for unsupported types."""
    if not media_type:
        return None
    media_type = media_type.split(";")[0].strip().lower()
    if media_type == "application/pdf":
        return "pdf"
    if media_type.startswith("text/") or media_type in _TEXT_MEDIA_TYPES:
        return "text"
    if media_type.startswith(("audio/", "video/")):
        return "media"
    return None


async def _probe_media_type(client: httpx.AsyncClient, url: str, timeout_seconds: float) -> str | None:
    guessed, _ = mimetypes.guess_type(urlparse(url).path)
    if guessed:
        return guessed
    try:
        response = await client.head(url, follow_redirects=True, timeout=timeout_seconds)
    except httpx.HTTPError:
        return None
    return response.headers.get("content-type")


def _decode_text(data: bytes) -> str:
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        return data.decode("latin-1")


async def _fetch_text_asset(client: httpx.AsyncClient, url: str, timeout_seconds: float) -> str:
    try:
        response = await client.get(url, follow_redirects=True, timeout=timeout_seconds)
    except httpx.TimeoutException as exc:
        raise FetchTimeout(url, timeout_seconds) from exc
    except httpx.HTTPError as exc:
        raise FetchFailed(url, reason=str(exc)) from exc
    if response.status_code >= 400:
        raise FetchFailed(str(response.url), response.status_code)
    if len(response.content) > MAX_TEXT_ASSET_BYTES:
        raise FetchFailed(url, reason=f"Text asset too large: {len(response.content)} bytes")
    return _decode_text(response.content)


def _transcript_resolution(outcome: TranscriptionOutcome) -> TranscriptResolution:
    diagnostics = TranscriptDiagnostics(
        provider=outcome.provider,
        attempted_providers=["speech-to-text"],
        provider_attempts={"speech-to-text": list(outcome.attempted)},
        notes="; ".join(outcome.notes) or None,
    )
    return TranscriptResolution(
        text=outcome.text,
        source=TranscriptSource.SPEECH_TO_TEXT,
        metadata={
            "provider": "speech-to-text",
            "transcription_provider": outcome.provider,
            "duration_seconds": outcome.duration_seconds,
        },
        diagnostics=diagnostics,
    )


async def extract_asset(
    target: str,
    request: ExtractionRequest,
    *,
    client: httpx.AsyncClient,
    speech_to_text: SpeechToText,
    on_progress: ProgressSink | None = None,
) -> ExtractedLinkContent:
    """Extract a local file or a directly downloadable asset URL.

    PDFs go through pypdf, text documents are decoded as-is and audio/video
    is transcribed. Anything else raises ``UnsupportedContentType``.
    """
    local = is_local_path(target)
    path = local_path_for(target) if local else None
    if path is not None and not path.is_file():
        raise FetchFailed(target, reason="file not found")

    if path is not None:
        media_type, _ = mimetypes.guess_type(path.name)
    else:
        media_type = await _probe_media_type(client, target, request.timeout_seconds)
    kind = media_kind(media_type)
    if kind is None:
        raise UnsupportedContentType(target, media_type)

    title = path.name if path is not None else (Path(urlparse(target).path).name or None)
    resolution = TranscriptResolution(diagnostics=TranscriptDiagnostics(cache_mode=request.cache_mode))
    video = None
    service = "asset"

    if kind == "pdf":
        data = await asyncio.to_thread(path.read_bytes) if path is not None else await download_pdf(
            client, target, request.timeout_seconds
        )
        pdf = await extract_pdf_text(data, target)
        body = normalize_for_prompt(pdf.text or "")
        title = pdf.title or title
    elif kind == "text":
        if path is not None:
            raw = _decode_text(await asyncio.to_thread(path.read_bytes))
        else:
            raw = await _fetch_text_asset(client, target, request.timeout_seconds)
        body = normalize_for_prompt(raw)
    else:
        if not speech_to_text.available:
            raise ProviderUnavailable(NO_BACKEND_MESSAGE)
        if path is not None:
            outcome = await speech_to_text.transcribe_file(
                path, url=target, service=service, media_type=media_type, on_progress=on_progress
            )
        else:
            outcome = await transcribe_remote_media(
                client, speech_to_text, target, url=target, service=service, on_progress=on_progress
            )
        if not outcome.text:
            raise AllProvidersExhausted(
                f"Speech-to-text produced no transcript for {target}: " + ("; ".join(outcome.notes) or "no output")
            )
        resolution = _transcript_resolution(outcome)
        resolution.diagnostics.cache_mode = request.cache_mode
        body = ""
        if media_type and media_type.startswith("video/") and path is None:
            video = DetectedVideo(kind="direct", url=target)

    logger.info("Extracted %s asset %s (%d chars)", kind, target, len(body))
    return finalize_content(
        url=target,
        base_content=select_base_content(body, resolution.text),
        max_characters=request.max_characters,
        title=title,
        description=None,
        site_name=None,
        resolution=resolution,
        video=video,
        is_video_only=False,
        diagnostics=ContentFetchDiagnostics(
            strategy=ExtractionStrategy.ASSET,
            scrape=ScrapeDiagnostics(cache_mode=request.cache_mode),
            markdown=MarkdownDiagnostics(
                requested=request.markdown_requested,
                notes="Assets are not converted to Markdown" if request.markdown_requested else None,
            ),
            transcript=resolution.diagnostics,
        ),
    )
