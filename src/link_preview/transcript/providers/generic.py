"""Terminal provider for every chain; it never produces text."""

from link_preview.models.transcript import ProviderOutcome, ProviderResult
from link_preview.transcript.base import ProviderContext, TranscriptProvider


class GenericProvider(TranscriptProvider):
    name = "generic"

    async def fetch_transcript(self, ctx: ProviderContext) -> ProviderResult:
        return ProviderResult(
            metadata={"provider": self.name, "reason": "not_implemented"},
            outcome=ProviderOutcome.NOT_APPLICABLE,
        )
