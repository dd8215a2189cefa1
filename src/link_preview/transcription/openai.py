"""OpenAI Whisper transcription over the audio transcriptions endpoint."""

import asyncio
from pathlib import Path

import httpx

from link_preview.errors import ProviderFailed
from link_preview.transcription.base import (
    MAX_OPENAI_UPLOAD_BYTES,
    PercentCallback,
    truncate_detail,
)

OPENAI_TRANSCRIPTIONS_URL = "https://api.openai.com/v1/audio/transcriptions"
OPENAI_WHISPER_MODEL = "whisper-1"

_EXTENSIONS_BY_MEDIA_TYPE = {
    "audio/mpeg": ".mp3",
    "audio/mp3": ".mp3",
    "audio/mp4": ".m4a",
    "audio/x-m4a": ".m4a",
    "audio/wav": ".wav",
    "audio/x-wav": ".wav",
    "audio/ogg": ".ogg",
    "audio/flac": ".flac",
    "audio/webm": ".webm",
    "video/mp4": ".mp4",
    "video/webm": ".webm",
}


def upload_filename(path: Path, media_type: str) -> str:
    """Whisper detects the format from the extension, so make sure there is one."""
    if path.suffix:
        return path.name
    return f"{path.name or 'media'}{_EXTENSIONS_BY_MEDIA_TYPE.get(media_type, '.mp3')}"


class OpenAIWhisperBackend:
    name = "openai"

    def __init__(self, api_key: str, client: httpx.AsyncClient):
        self.api_key = api_key
        self.client = client

    def is_ready(self) -> bool:
        return bool(self.api_key)

    async def transcribe(
        self,
        path: Path,
        *,
        media_type: str,
        timeout_seconds: float,
        on_percent: PercentCallback | None = None,
    ) -> str:
        size = path.stat().st_size
        if size > MAX_OPENAI_UPLOAD_BYTES:
            raise ProviderFailed(
                f"OpenAI upload limit exceeded ({size} bytes > {MAX_OPENAI_UPLOAD_BYTES})"
            )

        data = await asyncio.to_thread(path.read_bytes)
        try:
            response = await self.client.post(
                OPENAI_TRANSCRIPTIONS_URL,
                headers={"Authorization": f"Bearer {self.api_key}"},
                data={"model": OPENAI_WHISPER_MODEL},
                files={"file": (upload_filename(path, media_type), data, media_type)},
                timeout=timeout_seconds,
            )
        except httpx.HTTPError as exc:
            raise ProviderFailed(f"OpenAI transcription request failed: {exc}") from exc

        if response.status_code >= 400:
            detail = truncate_detail(response.text)
            suffix = f": {detail}" if detail else ""
            raise ProviderFailed(f"OpenAI transcription failed ({response.status_code}){suffix}")

        text = response.json().get("text")
        if not isinstance(text, str) or not text.strip():
            raise ProviderFailed("OpenAI transcription returned empty text")
        if on_percent is not None:
            on_percent(100)
        return text.strip()
