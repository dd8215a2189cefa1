"""Transcript resolution models: sources, provider results, diagnostics."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, model_validator


class TranscriptSource(str, Enum):
    """Where a transcript came from."""

    CAPTIONS = "captions"
    MANAGED_DOWNLOAD = "managed-download"
    SPEECH_TO_TEXT = "speech-to-text"
    FEED_EMBED = "feed-embed"
    SOCIAL_READER = "social-reader"
    UNAVAILABLE = "unavailable"


class CacheMode(str, Enum):
    """Per-request cache behavior. BYPASS disables both reads and writes."""

    DEFAULT = "default"
    BYPASS = "bypass"


class CacheStatus(str, Enum):
    """Outcome of a cache interaction, reported in diagnostics."""

    HIT = "hit"
    MISS = "miss"
    EXPIRED = "expired"
    BYPASSED = "bypassed"
    FALLBACK = "fallback"
    UNKNOWN = "unknown"


class ProviderOutcome(str, Enum):
    """How a single provider attempt ended."""

    SUCCESS = "success"
    FAILED = "failed"
    UNAVAILABLE = "unavailable"  # matched, but missing credentials or binaries
    NOT_APPLICABLE = "not-applicable"


class ProviderResult(BaseModel):
    """Outcome of one provider attempt.

    ``attempted_providers`` lists the backends the provider fanned out to
    internally (e.g. ``["whisper.cpp", "openai"]``), not chain entries.
    """

    text: str | None = None
    source: TranscriptSource | None = None
    attempted_providers: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] | None = None
    notes: str | None = None
    outcome: ProviderOutcome = ProviderOutcome.FAILED

    @model_validator(mode="after")
    def _text_requires_source(self) -> "ProviderResult":
        if self.text is not None and self.source is None:
            raise ValueError("a provider result with text must name its source")
        return self


class TranscriptDiagnostics(BaseModel):
    """Audit record of which providers and cache paths a resolution used."""

    cache_mode: CacheMode = CacheMode.DEFAULT
    cache_status: CacheStatus = CacheStatus.UNKNOWN
    text_provided: bool = False
    provider: str | None = None
    attempted_providers: list[str] = Field(default_factory=list)
    unavailable_providers: list[str] = Field(default_factory=list)
    provider_attempts: dict[str, list[str]] = Field(default_factory=dict)
    notes: str | None = None


class TranscriptResolution(BaseModel):
    """Final transcript for a link plus the audit trail that produced it."""

    text: str | None = None
    source: TranscriptSource | None = None
    metadata: dict[str, Any] | None = None
    diagnostics: TranscriptDiagnostics = Field(default_factory=TranscriptDiagnostics)

    @model_validator(mode="after")
    def _text_requires_source(self) -> "TranscriptResolution":
        if self.text is not None and self.source is None:
            raise ValueError("a transcript with text must name its source")
        return self
