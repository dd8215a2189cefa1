"""Tests for speech-to-text backend escalation."""

import pytest

from link_preview.errors import ProviderFailed, ProviderUnavailable
from link_preview.transcription.fal import FalWizperBackend
from link_preview.transcription.openai import OpenAIWhisperBackend
from link_preview.transcription.whisper import SpeechToText
from link_preview.transcription.whisper_cpp import WhisperCppBackend


class FakeBackend:
    def __init__(self, name, text=None, error=None, ready=True, percent=None):
        self.name = name
        self.text = text
        self.error = error
        self.ready = ready
        self.percent = percent
        self.calls = []

    def is_ready(self):
        return self.ready

    async def transcribe(self, path, *, media_type, timeout_seconds, on_percent=None):
        self.calls.append(media_type)
        if self.percent is not None and on_percent is not None:
            on_percent(self.percent)
        if self.error is not None:
            raise self.error
        return self.text


@pytest.mark.asyncio
async def test_first_backend_with_text_wins(tmp_path):
    audio = tmp_path / "clip.mp3"
    audio.write_bytes(b"ID3")
    local = FakeBackend("whisper.cpp", error=ProviderFailed("whisper.cpp failed (1): bad model"))
    remote = FakeBackend("openai", text="hello there")
    fallback = FakeBackend("fal", text="unused")

    outcome = await SpeechToText([local, remote, fallback]).transcribe_file(
        audio, url="https://example.com/clip.mp3", service="generic"
    )

    assert outcome.text == "hello there"
    assert outcome.provider == "openai"
    assert outcome.attempted == ["whisper.cpp", "openai"]
    assert outcome.notes == ["whisper.cpp: whisper.cpp failed (1): bad model"]
    assert remote.calls == ["audio/mpeg"]
    assert fallback.calls == []


@pytest.mark.asyncio
async def test_all_backends_failing_returns_empty_outcome(tmp_path):
    audio = tmp_path / "clip.wav"
    audio.write_bytes(b"RIFF")
    backends = [
        FakeBackend("openai", error=ProviderFailed("OpenAI transcription failed (500)")),
        FakeBackend("fal", error=ProviderFailed("FAL transcription returned empty text")),
    ]

    outcome = await SpeechToText(backends).transcribe_file(audio, url="u", service="generic")

    assert outcome.text is None
    assert outcome.provider is None
    assert outcome.attempted == ["openai", "fal"]
    assert len(outcome.notes) == 2


@pytest.mark.asyncio
async def test_no_ready_backend_raises(tmp_path):
    stt = SpeechToText([FakeBackend("openai", ready=False)])
    assert not stt.available
    with pytest.raises(ProviderUnavailable, match="No speech-to-text backend"):
        await stt.transcribe_file(tmp_path / "a.mp3", url="u", service="generic")


@pytest.mark.asyncio
async def test_progress_events(tmp_path):
    audio = tmp_path / "clip.mp3"
    audio.write_bytes(b"ID3")
    events = []
    stt = SpeechToText([FakeBackend("openai", text="done", percent=50)])

    await stt.transcribe_file(
        audio,
        url="https://example.com/ep",
        service="podcast",
        total_duration_seconds=600,
        on_progress=events.append,
    )

    start, progress = events
    assert start.kind == "transcript-whisper-start"
    assert start.provider_hint == "openai"
    assert progress.kind == "transcript-whisper-progress"
    assert progress.percent == 50
    assert progress.processed_duration_seconds == 300


def test_provider_hint():
    def hint(*names):
        return SpeechToText([FakeBackend(name) for name in names]).provider_hint()

    assert hint("whisper.cpp", "openai") == "cpp"
    assert hint("openai", "fal") == "openai->fal"
    assert hint("openai") == "openai"
    assert hint("fal") == "fal"
    assert hint() is None


def test_from_settings_orders_backends(settings, mock_http):
    client = mock_http(lambda request: None)
    stt = SpeechToText.from_settings(settings.model_copy(update={"openai_api_key": "sk-test"}), client)

    assert [type(b) for b in stt.backends] == [WhisperCppBackend, OpenAIWhisperBackend, FalWizperBackend]
    assert [b.name for b in stt.ready_backends()] == ["openai"]
    assert stt.provider_hint() == "openai"
