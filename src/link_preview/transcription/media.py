"""Remote media download for speech-to-text."""

import logging
import os
import tempfile
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlparse

import httpx

from link_preview.errors import ProviderFailed
from link_preview.extraction.fetcher import REQUEST_HEADERS, parse_content_length
from link_preview.models.progress import (
    MediaDownloadDone,
    MediaDownloadProgress,
    MediaDownloadStart,
)
from link_preview.progress import ProgressSink, emit_progress
from link_preview.transcription.base import TRANSCRIPTION_TIMEOUT_SECONDS
from link_preview.transcription.whisper import SpeechToText, TranscriptionOutcome

logger = logging.getLogger(__name__)

MAX_REMOTE_MEDIA_BYTES = 512 * 1024 * 1024  # 512MB


@dataclass(frozen=True)
class DownloadedMedia:
    path: Path
    media_type: str | None
    size_bytes: int


def _suffix_for(media_url: str) -> str:
    suffix = Path(urlparse(media_url).path).suffix
    return suffix if suffix and len(suffix) <= 6 else ".bin"


@asynccontextmanager
async def downloaded_media(
    client: httpx.AsyncClient,
    media_url: str,
    *,
    url: str,
    service: str,
    on_progress: ProgressSink | None = None,
    timeout_seconds: float = TRANSCRIPTION_TIMEOUT_SECONDS,
) -> AsyncIterator[DownloadedMedia]:
    """Stream ``media_url`` to a temp file; the file is removed on exit."""
    fd, name = tempfile.mkstemp(prefix="link-preview-media-", suffix=_suffix_for(media_url))
    path = Path(name)
    try:
        with os.fdopen(fd, "wb") as handle:
            media_type, size = await _stream_to(
                client, media_url, handle,
                url=url, service=service, on_progress=on_progress, timeout_seconds=timeout_seconds,
            )
        yield DownloadedMedia(path=path, media_type=media_type, size_bytes=size)
    finally:
        path.unlink(missing_ok=True)


async def _stream_to(client, media_url, handle, *, url, service, on_progress, timeout_seconds):
    downloaded = 0
    try:
        async with client.stream(
            "GET", media_url, headers=REQUEST_HEADERS, follow_redirects=True, timeout=timeout_seconds
        ) as response:
            if response.status_code >= 400:
                raise ProviderFailed(f"Media download failed ({response.status_code}) for {media_url}")
            total = parse_content_length(response.headers.get("content-length"))
            if total is not None and total > MAX_REMOTE_MEDIA_BYTES:
                raise ProviderFailed(f"Remote media too large ({total} bytes > {MAX_REMOTE_MEDIA_BYTES})")
            emit_progress(on_progress, MediaDownloadStart(
                url=url, service=service, media_url=media_url, total_bytes=total,
            ))
            async for chunk in response.aiter_bytes():
                downloaded += len(chunk)
                if downloaded > MAX_REMOTE_MEDIA_BYTES:
                    raise ProviderFailed(f"Remote media exceeded {MAX_REMOTE_MEDIA_BYTES} bytes")
                handle.write(chunk)
                emit_progress(on_progress, MediaDownloadProgress(
                    url=url, service=service, downloaded_bytes=downloaded, total_bytes=total,
                ))
            media_type = response.headers.get("content-type", "").split(";")[0].strip().lower() or None
    except httpx.HTTPError as exc:
        raise ProviderFailed(f"Media download failed for {media_url}: {exc}") from exc

    emit_progress(on_progress, MediaDownloadDone(
        url=url, service=service, downloaded_bytes=downloaded, total_bytes=total,
    ))
    return media_type, downloaded


async def transcribe_remote_media(
    client: httpx.AsyncClient,
    speech_to_text: SpeechToText,
    media_url: str,
    *,
    url: str,
    service: str,
    total_duration_seconds: float | None = None,
    on_progress: ProgressSink | None = None,
) -> TranscriptionOutcome:
    """Download remote audio/video and run it through speech-to-text."""
    async with downloaded_media(
        client, media_url, url=url, service=service, on_progress=on_progress
    ) as media:
        media_type = media.media_type
        if media_type in (None, "application/octet-stream", "binary/octet-stream"):
            media_type = None
        logger.info("Transcribing %d bytes of media from %s", media.size_bytes, media_url)
        outcome = await speech_to_text.transcribe_file(
            media.path,
            url=url,
            service=service,
            media_type=media_type,
            total_duration_seconds=total_duration_seconds,
            on_progress=on_progress,
        )
    outcome.duration_seconds = total_duration_seconds
    return outcome
