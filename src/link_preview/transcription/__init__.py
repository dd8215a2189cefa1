"""Speech-to-text: whisper.cpp, OpenAI Whisper and FAL Wizper backends.

Public API:
    SpeechToText.from_settings(settings, client) -> SpeechToText
        Escalates through the ready backends in order; ``provider_hint()``
        names the first one.
    transcribe_remote_media(client, stt, media_url, ...) -> TranscriptionOutcome
    transcribe_with_ytdlp(binary, stt, url, ...) -> TranscriptionOutcome
"""

from link_preview.transcription.media import transcribe_remote_media
from link_preview.transcription.whisper import SpeechToText, TranscriptionOutcome
from link_preview.transcription.ytdlp import transcribe_with_ytdlp

__all__ = [
    "SpeechToText",
    "TranscriptionOutcome",
    "transcribe_remote_media",
    "transcribe_with_ytdlp",
]
