"""Progress events pushed to an optional sink during extraction.

Events are transient and purely observational. Each variant carries only the
fields relevant to its phase; ``kind`` is the discriminator.
"""

from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field


class FetchHtmlStart(BaseModel):
    kind: Literal["fetch-html-start"] = "fetch-html-start"
    url: str


class FetchHtmlProgress(BaseModel):
    kind: Literal["fetch-html-progress"] = "fetch-html-progress"
    url: str
    downloaded_bytes: int
    total_bytes: int | None = None


class FetchHtmlDone(BaseModel):
    kind: Literal["fetch-html-done"] = "fetch-html-done"
    url: str
    downloaded_bytes: int
    total_bytes: int | None = None


class MediaDownloadStart(BaseModel):
    kind: Literal["transcript-media-download-start"] = "transcript-media-download-start"
    url: str
    service: str
    media_url: str | None = None
    total_bytes: int | None = None


class MediaDownloadProgress(BaseModel):
    kind: Literal["transcript-media-download-progress"] = "transcript-media-download-progress"
    url: str
    service: str
    downloaded_bytes: int
    total_bytes: int | None = None


class MediaDownloadDone(BaseModel):
    kind: Literal["transcript-media-download-done"] = "transcript-media-download-done"
    url: str
    service: str
    downloaded_bytes: int
    total_bytes: int | None = None


class WhisperStart(BaseModel):
    kind: Literal["transcript-whisper-start"] = "transcript-whisper-start"
    url: str
    service: str
    provider_hint: str
    total_duration_seconds: float | None = None


class WhisperProgress(BaseModel):
    kind: Literal["transcript-whisper-progress"] = "transcript-whisper-progress"
    url: str
    service: str
    processed_duration_seconds: float | None = None
    total_duration_seconds: float | None = None
    percent: float | None = None


class TranscriptStart(BaseModel):
    kind: Literal["transcript-start"] = "transcript-start"
    url: str
    service: str
    has_speech_to_text: bool = False
    provider_hint: str | None = None


class TranscriptDone(BaseModel):
    kind: Literal["transcript-done"] = "transcript-done"
    url: str
    service: str
    ok: bool
    source: str | None = None


class ScrapeStart(BaseModel):
    kind: Literal["scrape-start"] = "scrape-start"
    url: str


class ScrapeDone(BaseModel):
    kind: Literal["scrape-done"] = "scrape-done"
    url: str
    ok: bool
    markdown_bytes: int | None = None
    html_bytes: int | None = None


class SocialReaderStart(BaseModel):
    kind: Literal["social-reader-start"] = "social-reader-start"
    url: str
    reader: str


class SocialReaderDone(BaseModel):
    kind: Literal["social-reader-done"] = "social-reader-done"
    url: str
    reader: str
    ok: bool
    text_characters: int | None = None


ProgressEvent = Annotated[
    Union[
        FetchHtmlStart,
        FetchHtmlProgress,
        FetchHtmlDone,
        MediaDownloadStart,
        MediaDownloadProgress,
        MediaDownloadDone,
        WhisperStart,
        WhisperProgress,
        TranscriptStart,
        TranscriptDone,
        ScrapeStart,
        ScrapeDone,
        SocialReaderStart,
        SocialReaderDone,
    ],
    Field(discriminator="kind"),
]
