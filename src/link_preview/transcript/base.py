"""Transcript provider contract."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from link_preview.models.transcript import (
    CacheMode,
    ProviderOutcome,
    ProviderResult,
    TranscriptSource,
)
from link_preview.progress import ProgressSink


@dataclass
class ProviderContext:
    """Per-request input shared by every provider in a chain.

    ``shared`` carries lookups that more than one provider needs (e.g. the
    located podcast episode) so they run once per request.
    """

    url: str
    html: str | None
    service: str
    resource_key: str | None = None
    cache_mode: CacheMode = CacheMode.DEFAULT
    on_progress: ProgressSink | None = None
    shared: dict[str, Any] = field(default_factory=dict)


class TranscriptProvider(ABC):
    """One way of obtaining a transcript. Chains try providers in order."""

    name: str
    source: TranscriptSource | None = None

    def can_handle(self, ctx: ProviderContext) -> bool:
        return True

    def is_configured(self) -> bool:
        """False when credentials or binaries are missing; the provider is then skipped."""
        return True

    @abstractmethod
    async def fetch_transcript(self, ctx: ProviderContext) -> ProviderResult:
        """Return a result with text on success.

        May raise ``ProviderUnavailable`` or ``ProviderFailed``; the resolver
        converts both into notes and moves on.
        """

    def success(
        self,
        text: str,
        *,
        metadata: dict[str, Any] | None = None,
        attempted: list[str] | None = None,
        notes: str | None = None,
    ) -> ProviderResult:
        return ProviderResult(
            text=text,
            source=self.source,
            attempted_providers=attempted or [],
            metadata={"provider": self.name, **(metadata or {})},
            notes=notes,
            outcome=ProviderOutcome.SUCCESS,
        )

    def failure(self, notes: str | None = None, *, attempted: list[str] | None = None) -> ProviderResult:
        return ProviderResult(
            attempted_providers=attempted or [],
            notes=notes,
            outcome=ProviderOutcome.FAILED,
        )
