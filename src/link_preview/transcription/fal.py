"""FAL Wizper transcription via the synchronous run endpoint."""

import asyncio
import base64
from pathlib import Path
from typing import Any

import httpx

from link_preview.errors import ProviderFailed
from link_preview.transcription.base import PercentCallback, truncate_detail

FAL_WIZPER_URL = "https://fal.run/fal-ai/wizper"


def to_data_uri(data: bytes, media_type: str) -> str:
    return f"data:{media_type};base64,{base64.b64encode(data).decode('ascii')}"


def extract_fal_text(payload: Any) -> str | None:
    """Text from a Wizper response: ``text``, or the joined ``chunks``."""
    if not isinstance(payload, dict):
        return None
    data = payload.get("data", payload)
    if not isinstance(data, dict):
        return None
    text = data.get("text")
    if isinstance(text, str) and text.strip():
        return text.strip()
    chunks = data.get("chunks")
    if isinstance(chunks, list):
        parts = [
            chunk["text"].strip()
            for chunk in chunks
            if isinstance(chunk, dict) and isinstance(chunk.get("text"), str) and chunk["text"].strip()
        ]
        return " ".join(parts) or None
    return None


class FalWizperBackend:
    name = "fal"

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
        data = await asyncio.to_thread(path.read_bytes)
        try:
            response = await self.client.post(
                FAL_WIZPER_URL,
                headers={"Authorization": f"Key {self.api_key}"},
                json={"audio_url": to_data_uri(data, media_type), "language": "en"},
                timeout=timeout_seconds,
            )
        except httpx.HTTPError as exc:
            raise ProviderFailed(f"FAL transcription request failed: {exc}") from exc

        if response.status_code >= 400:
            detail = truncate_detail(response.text)
            suffix = f": {detail}" if detail else ""
            raise ProviderFailed(f"FAL transcription failed ({response.status_code}){suffix}")

        text = extract_fal_text(response.json())
        if not text:
            raise ProviderFailed("FAL transcription returned empty text")
        if on_percent is not None:
            on_percent(100)
        return text
