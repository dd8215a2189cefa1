"""Whitespace normalization and character budgeting for extracted text."""

import re
from dataclasses import dataclass

_HORIZONTAL_WS = re.compile(r"[\t ]+")
_NEWLINE_WS = re.compile(r"\s*\n\s*")

# Normalized text has no blank lines; a line break ends a paragraph.
_SENTENCE_BREAKS = (". ", "! ", "? ", "\n")


@dataclass(frozen=True)
class ContentBudgetResult:
    content: str
    truncated: bool
    total_characters: int
    word_count: int


def normalize_for_prompt(text: str) -> str:
    """Collapse horizontal whitespace runs; any run of line breaks becomes one."""
    text = text.replace("\u00a0", " ")
    text = _HORIZONTAL_WS.sub(" ", text)
    text = _NEWLINE_WS.sub("\n", text)
    return text.strip()


def normalize_candidate(value: str | None) -> str | None:
    """Collapse all whitespace to single spaces; empty results become None."""
    if not value:
        return None
    collapsed = " ".join(value.split())
    return collapsed or None


def pick_first_text(candidates) -> str | None:
    """Return the first candidate that is non-empty after normalization."""
    for candidate in candidates:
        normalized = normalize_candidate(candidate)
        if normalized:
            return normalized
    return None


def clip_at_sentence_boundary(text: str, max_characters: int) -> str:
    """Clip to at most ``max_characters``, preferring a sentence end.

    The latest ``. ``, ``! ``, ``? `` or line break inside the budget is used
    when it lies past the halfway point; the punctuation is kept. Otherwise
    the text is hard-clipped.
    """
    if len(text) <= max_characters:
        return text
    window = text[:max_characters]
    last_break = max(window.rfind(marker) for marker in _SENTENCE_BREAKS)
    if last_break > max_characters * 0.5:
        return window[: last_break + 1]
    return window


def count_words(text: str) -> int:
    return len(text.split())


def apply_content_budget(text: str, max_characters: int | None) -> ContentBudgetResult:
    """Trim ``text`` and clip it to the budget.

    ``total_characters`` is the length before clipping; ``word_count``
    describes the final content.
    """
    trimmed = text.strip()
    total = len(trimmed)
    if max_characters is None or total <= max_characters:
        return ContentBudgetResult(trimmed, False, total, count_words(trimmed))

    clipped = clip_at_sentence_boundary(trimmed, max_characters).strip()
    return ContentBudgetResult(clipped, True, total, count_words(clipped))


def append_note(existing: str | None, note: str | None) -> str | None:
    """Join diagnostic notes with ``; ``."""
    if not note:
        return existing
    return f"{existing}; {note}" if existing else note
