"""Podcast transcript providers: feed-published transcripts, then episode audio."""

import json
import logging

import httpx

from link_preview.errors import ProviderFailed, ProviderUnavailable
from link_preview.models.transcript import ProviderResult, TranscriptSource
from link_preview.transcript.base import ProviderContext, TranscriptProvider
from link_preview.transcript.episode import PODCAST_REQUEST_TIMEOUT_SECONDS, EpisodeLocator
from link_preview.transcript.normalize import (
    json_transcript_to_plain_text,
    normalize_transcript_text,
    vtt_to_plain_text,
)
from link_preview.transcript.rss import TranscriptLink, find_episode, select_preferred_transcript
from link_preview.transcription.media import transcribe_remote_media
from link_preview.transcription.whisper import SpeechToText

logger = logging.getLogger(__name__)

TRANSCRIPT_ACCEPT_HEADER = "text/vtt,text/plain,application/json;q=0.9,*/*;q=0.8"
PREVIEW_MIN_CHARACTERS = 200
PREVIEW_LONG_EPISODE_CHARACTERS = 800
PREVIEW_LONG_EPISODE_SECONDS = 600


def transcript_body_to_text(body: str, link: TranscriptLink) -> str | None:
    """Plain text from a JSON, WebVTT or plain-text transcript document."""
    lowered_url = link.url.lower()
    if link.type == "application/json" or lowered_url.endswith(".json"):
        try:
            text = json_transcript_to_plain_text(json.loads(body))
        except ValueError:
            return None
    elif link.type == "text/vtt" or lowered_url.endswith(".vtt") or body.lstrip().startswith("WEBVTT"):
        text = vtt_to_plain_text(body)
    else:
        text = body
    return normalize_transcript_text(text) if text else None


def looks_like_preview_clip(text: str, duration_seconds: float | None) -> bool:
    """Short transcripts of long (or unknown-length) episodes are trailers, not episodes."""
    length = len(text.strip())
    if length < PREVIEW_MIN_CHARACTERS:
        return True
    return length < PREVIEW_LONG_EPISODE_CHARACTERS and (
        duration_seconds is None or duration_seconds >= PREVIEW_LONG_EPISODE_SECONDS
    )


class _PodcastProvider(TranscriptProvider):
    def __init__(self, client: httpx.AsyncClient, locator: EpisodeLocator):
        self.client = client
        self.locator = locator

    def can_handle(self, ctx: ProviderContext) -> bool:
        return ctx.service == "podcast"


class FeedTranscriptProvider(_PodcastProvider):
    """``<podcast:transcript>`` documents linked from the episode's feed item."""

    name = "feed-transcript"
    source = TranscriptSource.FEED_EMBED

    async def fetch_transcript(self, ctx: ProviderContext) -> ProviderResult:
        location = await self.locator.locate(ctx)
        if location is None or not location.feed_xml:
            return self.failure("No podcast feed found")
        if "transcript" not in location.feed_xml.lower():
            return self.failure("Feed publishes no transcripts")

        episode = find_episode(location.feed_xml, location.episode_title)
        link = select_preferred_transcript(episode.transcripts) if episode else None
        if link is None:
            return self.failure("Feed item has no <podcast:transcript>")

        try:
            response = await self.client.get(
                link.url,
                headers={"accept": TRANSCRIPT_ACCEPT_HEADER},
                follow_redirects=True,
                timeout=PODCAST_REQUEST_TIMEOUT_SECONDS,
            )
        except httpx.HTTPError as exc:
            raise ProviderFailed(f"Transcript download failed: {exc}") from exc
        if response.status_code >= 400:
            raise ProviderFailed(f"Transcript download failed ({response.status_code})")

        text = transcript_body_to_text(response.text, link)
        if not text:
            return self.failure("Feed transcript was empty")
        return self.success(
            text,
            notes="Used RSS <podcast:transcript> (skipped Whisper)",
            metadata={
                "kind": f"{location.kind}_transcript",
                "feed_url": location.feed_url,
                "transcript_url": link.url,
                "transcript_type": link.type,
                "episode_title": episode.title,
                **location.metadata,
            },
        )


class EpisodeAudioProvider(_PodcastProvider):
    """Episode audio (enclosure, platform or embedded URL) through speech-to-text."""

    name = "episode-audio"
    source = TranscriptSource.SPEECH_TO_TEXT

    def __init__(self, client: httpx.AsyncClient, locator: EpisodeLocator, speech_to_text: SpeechToText):
        super().__init__(client, locator)
        self.speech_to_text = speech_to_text

    def is_configured(self) -> bool:
        return self.speech_to_text.available

    async def fetch_transcript(self, ctx: ProviderContext) -> ProviderResult:
        if not self.speech_to_text.available:
            raise ProviderUnavailable("No speech-to-text backend configured")
        location = await self.locator.locate(ctx)
        if location is None or not location.audio:
            notes = "; ".join(location.notes) if location else ""
            return self.failure(notes or "No episode audio found")

        attempted: list[str] = []
        notes = list(location.notes)
        for candidate in location.audio:
            try:
                outcome = await transcribe_remote_media(
                    self.client,
                    self.speech_to_text,
                    candidate.url,
                    url=ctx.url,
                    service=ctx.service,
                    total_duration_seconds=candidate.duration_seconds,
                    on_progress=ctx.on_progress,
                )
            except ProviderFailed as exc:
                logger.warning("Episode audio %s failed for %s: %s", candidate.kind, ctx.url, exc)
                notes.append(f"{candidate.kind}: {exc}")
                continue

            attempted += [name for name in outcome.attempted if name not in attempted]
            notes += outcome.notes
            if not outcome.text:
                notes.append(f"{candidate.kind}: transcription returned no text")
                continue
            if candidate.may_be_preview and looks_like_preview_clip(outcome.text, candidate.duration_seconds):
                notes.append(
                    f"{candidate.kind} looked like a short clip ({len(outcome.text)} chars); trying next source"
                )
                continue

            return self.success(
                outcome.text,
                attempted=attempted,
                notes="; ".join(notes) or None,
                metadata={
                    "kind": candidate.kind,
                    "audio_url": candidate.url,
                    "duration_seconds": candidate.duration_seconds,
                    "transcription_provider": outcome.provider,
                    "show_title": location.show_title,
                    "episode_title": location.episode_title,
                    "feed_url": location.feed_url,
                    **location.metadata,
                },
            )
        return self.failure("; ".join(notes) or "Episode audio could not be transcribed", attempted=attempted)
