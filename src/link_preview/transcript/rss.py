"""RSS/Atom feed parsing for podcast episodes."""

from dataclasses import dataclass, field

from bs4 import BeautifulSoup, Tag

from link_preview.transcript.normalize import normalize_loose_title


@dataclass(frozen=True)
class TranscriptLink:
    url: str
    type: str | None  # Media type without parameters, lowercased


@dataclass(frozen=True)
class FeedEpisode:
    title: str | None
    enclosure_url: str | None
    duration_seconds: int | None = None
    transcripts: list[TranscriptLink] = field(default_factory=list)


def looks_like_feed(xml: str) -> bool:
    head = xml[:4096].lstrip().lower()
    return "<rss" in head or "<feed" in head


def parse_itunes_duration(raw: str | None) -> int | None:
    """Seconds from ``SS``, ``MM:SS`` or ``HH:MM:SS``; None when absent or zero."""
    if not raw:
        return None
    value = raw.strip()
    if not value:
        return None
    if value.isdigit():
        seconds = int(value)
        return seconds if seconds > 0 else None

    parts = [part.strip() for part in value.split(":") if part.strip()]
    if len(parts) not in (2, 3):
        return None
    try:
        numbers = [float(part) for part in parts]
    except ValueError:
        return None
    if any(n < 0 for n in numbers):
        return None
    if len(numbers) == 3:
        hours, minutes, seconds = numbers
        total = round(hours * 3600 + minutes * 60 + seconds)
    else:
        minutes, seconds = numbers
        total = round(minutes * 60 + seconds)
    return total if total > 0 else None


def _named(*names: str):
    return lambda tag: isinstance(tag, Tag) and tag.name in names


def _media_type(raw: str | None) -> str | None:
    if not raw:
        return None
    return raw.split(";")[0].strip().lower() or None


def _enclosure_url(node: Tag) -> str | None:
    enclosure = node.find("enclosure", url=True)
    if enclosure is not None and enclosure["url"].strip():
        return enclosure["url"].strip()
    link = node.find("link", attrs={"rel": "enclosure", "href": True})
    if link is not None and link["href"].strip():
        return link["href"].strip()
    return None


def _episode_from(node: Tag) -> FeedEpisode:
    title_tag = node.find("title")
    title = title_tag.get_text().strip() if title_tag else None
    duration_tag = node.find(_named("duration", "itunes:duration"))
    transcripts = [
        TranscriptLink(url=tag["url"].strip(), type=_media_type(tag.get("type")))
        for tag in node.find_all(_named("transcript", "podcast:transcript"))
        if tag.get("url") and tag["url"].strip()
    ]
    return FeedEpisode(
        title=title or None,
        enclosure_url=_enclosure_url(node),
        duration_seconds=parse_itunes_duration(duration_tag.get_text() if duration_tag else None),
        transcripts=transcripts,
    )


def parse_feed_episodes(xml: str) -> list[FeedEpisode]:
    """Episodes (``<item>`` or Atom ``<entry>``) in feed order."""
    soup = BeautifulSoup(xml, "xml")
    return [_episode_from(node) for node in soup.find_all(["item", "entry"])]


def find_episode(xml: str, episode_title: str | None = None) -> FeedEpisode | None:
    """The episode with an enclosure, matched by loose title when one is given.

    Without a title the first episode with an enclosure wins, falling back
    to a feed-level enclosure.
    """
    episodes = parse_feed_episodes(xml)
    if episode_title:
        target = normalize_loose_title(episode_title)
        for episode in episodes:
            if episode.title and episode.enclosure_url and normalize_loose_title(episode.title) == target:
                return episode
        return None

    for episode in episodes:
        if episode.enclosure_url:
            return episode
    soup = BeautifulSoup(xml, "xml")
    url = _enclosure_url(soup)
    if url:
        duration_tag = soup.find(_named("duration", "itunes:duration"))
        return FeedEpisode(
            title=None,
            enclosure_url=url,
            duration_seconds=parse_itunes_duration(duration_tag.get_text() if duration_tag else None),
        )
    return None


def select_preferred_transcript(candidates: list[TranscriptLink]) -> TranscriptLink | None:
    """JSON transcripts first, then WebVTT, then whatever is listed first."""
    if not candidates:
        return None
    for candidate in candidates:
        if candidate.type == "application/json" or candidate.url.lower().endswith(".json"):
            return candidate
    for candidate in candidates:
        if candidate.type == "text/vtt" or candidate.url.lower().endswith(".vtt"):
            return candidate
    return candidates[0]
