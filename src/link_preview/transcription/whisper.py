"""Speech-to-text escalation across the configured backends.

Backends are tried in order (local whisper.cpp, OpenAI, FAL); the first one
that returns text wins. A backend that errors is recorded in the notes and
the next one is tried.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path

import httpx

from link_preview.config import Settings
from link_preview.errors import ProviderFailed, ProviderUnavailable
from link_preview.models.progress import WhisperProgress, WhisperStart
from link_preview.progress import ProgressSink, emit_progress
from link_preview.transcription.base import (
    TRANSCRIPTION_TIMEOUT_SECONDS,
    SpeechToTextBackend,
    guess_media_type,
)
from link_preview.transcription.fal import FalWizperBackend
from link_preview.transcription.openai import OpenAIWhisperBackend
from link_preview.transcription.whisper_cpp import WhisperCppBackend

logger = logging.getLogger(__name__)

NO_BACKEND_MESSAGE = (
    "No speech-to-text backend available "
    "(install whisper.cpp with a model, or set OPENAI_API_KEY or FAL_API_KEY)"
)


@dataclass
class TranscriptionOutcome:
    text: str | None
    provider: str | None
    duration_seconds: float | None = None
    attempted: list[str] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)


class SpeechToText:
    def __init__(
        self,
        backends: list[SpeechToTextBackend],
        timeout_seconds: float = TRANSCRIPTION_TIMEOUT_SECONDS,
    ):
        self.backends = backends
        self.timeout_seconds = timeout_seconds

    @classmethod
    def from_settings(cls, settings: Settings, client: httpx.AsyncClient) -> "SpeechToText":
        return cls([
            WhisperCppBackend(
                settings.whisper_cpp_binary,
                settings.whisper_cpp_model_path,
                disabled=settings.disable_local_whisper,
            ),
            OpenAIWhisperBackend(settings.openai_api_key, client),
            FalWizperBackend(settings.fal_api_key, client),
        ])

    def ready_backends(self) -> list[SpeechToTextBackend]:
        return [backend for backend in self.backends if backend.is_ready()]

    @property
    def available(self) -> bool:
        return bool(self.ready_backends())

    def provider_hint(self) -> str | None:
        """Short label for the backend that will be tried first."""
        names = [backend.name for backend in self.ready_backends()]
        if "whisper.cpp" in names:
            return "cpp"
        if "openai" in names and "fal" in names:
            return "openai->fal"
        if "openai" in names:
            return "openai"
        if "fal" in names:
            return "fal"
        return None

    async def transcribe_file(
        self,
        path: Path,
        *,
        url: str,
        service: str,
        media_type: str | None = None,
        total_duration_seconds: float | None = None,
        on_progress: ProgressSink | None = None,
    ) -> TranscriptionOutcome:
        """Transcribe a local media file, escalating through ready backends.

        Raises ``ProviderUnavailable`` when no backend is ready. Returns an
        outcome with ``text=None`` when every backend failed.
        """
        ready = self.ready_backends()
        if not ready:
            raise ProviderUnavailable(NO_BACKEND_MESSAGE)

        media_type = media_type or guess_media_type(path)
        emit_progress(on_progress, WhisperStart(
            url=url,
            service=service,
            provider_hint=self.provider_hint() or "unknown",
            total_duration_seconds=total_duration_seconds,
        ))

        def report(percent: int) -> None:
            processed = (
                total_duration_seconds * percent / 100
                if total_duration_seconds and total_duration_seconds > 0
                else None
            )
            emit_progress(on_progress, WhisperProgress(
                url=url,
                service=service,
                processed_duration_seconds=processed,
                total_duration_seconds=total_duration_seconds,
                percent=float(percent),
            ))

        outcome = TranscriptionOutcome(text=None, provider=None)
        for backend in ready:
            outcome.attempted.append(backend.name)
            try:
                text = await backend.transcribe(
                    path,
                    media_type=media_type,
                    timeout_seconds=self.timeout_seconds,
                    on_percent=report,
                )
            except (ProviderFailed, OSError, ValueError) as exc:
                logger.warning("%s transcription failed for %s: %s", backend.name, url, exc)
                outcome.notes.append(f"{backend.name}: {exc}")
                continue
            outcome.text = text
            outcome.provider = backend.name
            return outcome
        return outcome
