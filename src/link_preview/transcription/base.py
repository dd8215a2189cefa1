"""Speech-to-text backend contract and shared constants."""

import mimetypes
from collections.abc import Callable
from pathlib import Path
from typing import Protocol

TRANSCRIPTION_TIMEOUT_SECONDS = 600.0
MAX_OPENAI_UPLOAD_BYTES = 25 * 1024 * 1024  # 25MB
MAX_ERROR_DETAIL_CHARACTERS = 200

# Percent complete, 0-100
PercentCallback = Callable[[int], None]


class SpeechToTextBackend(Protocol):
    """One transcription engine (local binary or hosted API)."""

    name: str

    def is_ready(self) -> bool:
        """True when credentials or binaries are present."""
        ...

    async def transcribe(
        self,
        path: Path,
        *,
        media_type: str,
        timeout_seconds: float,
        on_percent: PercentCallback | None = None,
    ) -> str:
        """Return non-empty transcript text or raise ``ProviderFailed``."""
        ...


def guess_media_type(path: Path, fallback: str = "audio/mpeg") -> str:
    media_type, _ = mimetypes.guess_type(path.name)
    return media_type or fallback


def truncate_detail(text: str) -> str:
    trimmed = text.strip()
    if len(trimmed) <= MAX_ERROR_DETAIL_CHARACTERS:
        return trimmed
    return trimmed[:MAX_ERROR_DETAIL_CHARACTERS] + "..."
