"""Transcript text normalization for the formats providers receive."""

import re
import unicodedata
from typing import Any

from link_preview.extraction.cleaner import normalize_for_prompt

_VTT_TIMING = re.compile(r"^\d{2}:\d{2}:\d{2}\.\d{3}\s+-->\s+\d{2}:\d{2}:\d{2}\.\d{3}")
_VTT_SHORT_TIMING = re.compile(r"^\d{2}:\d{2}\.\d{3}\s+-->\s+\d{2}:\d{2}\.\d{3}")
_VTT_BLOCK = re.compile(r"^(NOTE|STYLE|REGION)\b", re.IGNORECASE)
_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def normalize_transcript_text(text: str) -> str:
    return normalize_for_prompt(text)


def normalize_transcript_lines(lines: list[str]) -> str | None:
    if not lines:
        return None
    return normalize_transcript_text("\n".join(lines)) or None


def _row_texts(rows: list) -> list[str]:
    texts = []
    for row in rows:
        if isinstance(row, dict) and isinstance(row.get("text"), str) and row["text"].strip():
            texts.append(row["text"].strip())
    return texts


def normalize_managed_transcript(raw: Any) -> str | None:
    """Text from a managed transcript payload: a string, ``[{text}]`` rows or ``{text}``."""
    if isinstance(raw, str):
        return normalize_transcript_text(raw) or None
    if isinstance(raw, list):
        return normalize_transcript_lines(_row_texts(raw))
    if isinstance(raw, dict) and isinstance(raw.get("text"), str):
        return normalize_transcript_text(raw["text"]) or None
    return None


def vtt_to_plain_text(raw: str) -> str:
    """Strip WebVTT headers, cue numbers, timings and NOTE/STYLE/REGION blocks."""
    kept = []
    for line in raw.replace("\r\n", "\n").split("\n"):
        line = line.strip()
        if not line or line.upper() == "WEBVTT":
            continue
        if _VTT_TIMING.match(line) or _VTT_SHORT_TIMING.match(line):
            continue
        if line.isdigit() or _VTT_BLOCK.match(line):
            continue
        kept.append(line)
    return "\n".join(kept).strip()


def json_transcript_to_plain_text(payload: Any) -> str | None:
    """Text from JSON transcripts: ``[{text}]``, ``{transcript}``, ``{text}`` or ``{segments: [{text}]}``."""
    if isinstance(payload, list):
        return "\n".join(_row_texts(payload)).strip() or None
    if isinstance(payload, dict):
        for key in ("transcript", "text"):
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
        if isinstance(payload.get("segments"), list):
            return "\n".join(_row_texts(payload["segments"])).strip() or None
    return None


def normalize_loose_title(value: str) -> str:
    """Lowercase, strip diacritics and collapse punctuation for title matching."""
    decomposed = unicodedata.normalize("NFKD", value.lower())
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return _NON_ALNUM.sub(" ", stripped).strip()
