"""Tests for podcast feed parsing."""

from link_preview.transcript.normalize import (
    json_transcript_to_plain_text,
    normalize_loose_title,
    vtt_to_plain_text,
)
from link_preview.transcript.rss import (
    TranscriptLink,
    find_episode,
    looks_like_feed,
    parse_feed_episodes,
    parse_itunes_duration,
    select_preferred_transcript,
)

FEED = """<?xml version="1.0"?>
<rss version="2.0" xmlns:itunes="http://www.itunes.com/dtds/podcast-1.0.dtd"
     xmlns:podcast="https://podcastindex.org/namespace/1.0">
  <channel>
    <title>The Show</title>
    <item>
      <title>Episode Two: Café Talk</title>
      <enclosure url="https://cdn.example.com/ep2.mp3" type="audio/mpeg" length="1"/>
      <itunes:duration>01:02:03</itunes:duration>
      <podcast:transcript url="https://cdn.example.com/ep2.srt" type="application/srt"/>
      <podcast:transcript url="https://cdn.example.com/ep2.vtt" type="text/vtt; charset=utf-8"/>
    </item>
    <item>
      <title>Episode One</title>
      <enclosure url="https://cdn.example.com/ep1.mp3" type="audio/mpeg" length="1"/>
      <itunes:duration>1800</itunes:duration>
    </item>
  </channel>
</rss>"""

ATOM = """<?xml version="1.0"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <entry>
    <title>Atom Episode</title>
    <link rel="enclosure" href="https://cdn.example.com/atom.m4a"/>
  </entry>
</feed>"""


def test_looks_like_feed():
    assert looks_like_feed(FEED)
    assert looks_like_feed(ATOM)
    assert not looks_like_feed("<html><body>page</body></html>")


def test_parse_itunes_duration():
    assert parse_itunes_duration("1800") == 1800
    assert parse_itunes_duration("30:15") == 1815
    assert parse_itunes_duration("01:02:03") == 3723
    assert parse_itunes_duration("0") is None
    assert parse_itunes_duration("abc") is None
    assert parse_itunes_duration(None) is None


def test_parse_feed_episodes():
    episodes = parse_feed_episodes(FEED)
    assert [e.title for e in episodes] == ["Episode Two: Café Talk", "Episode One"]
    first = episodes[0]
    assert first.enclosure_url == "https://cdn.example.com/ep2.mp3"
    assert first.duration_seconds == 3723
    assert [t.type for t in first.transcripts] == ["application/srt", "text/vtt"]


def test_find_episode_defaults_to_first_with_enclosure():
    assert find_episode(FEED).title == "Episode Two: Café Talk"


def test_find_episode_loose_title_match():
    episode = find_episode(FEED, "episode one")
    assert episode.enclosure_url == "https://cdn.example.com/ep1.mp3"
    assert find_episode(FEED, "episode two cafe talk").duration_seconds == 3723
    assert find_episode(FEED, "Episode Three") is None


def test_find_episode_atom_enclosure_link():
    episode = find_episode(ATOM)
    assert episode.title == "Atom Episode"
    assert episode.enclosure_url == "https://cdn.example.com/atom.m4a"


def test_select_preferred_transcript():
    srt = TranscriptLink("https://x/a.srt", "application/srt")
    vtt = TranscriptLink("https://x/a.vtt", "text/vtt")
    json_link = TranscriptLink("https://x/a", "application/json")
    assert select_preferred_transcript([srt, vtt, json_link]) == json_link
    assert select_preferred_transcript([srt, vtt]) == vtt
    assert select_preferred_transcript([srt]) == srt
    assert select_preferred_transcript([]) is None


def test_vtt_to_plain_text():
    raw = "WEBVTT\n\nNOTE generated\n\n1\n00:00:00.000 --> 00:00:02.000\nHello there\n\n2\n00:01.000 --> 00:02.000\nGeneral Kenobi\n"
    assert vtt_to_plain_text(raw) == "Hello there\nGeneral Kenobi"


def test_json_transcript_shapes():
    assert json_transcript_to_plain_text([{"text": "a"}, {"text": " b "}]) == "a\nb"
    assert json_transcript_to_plain_text({"segments": [{"text": "seg"}]}) == "seg"
    assert json_transcript_to_plain_text({"transcript": "whole"}) == "whole"
    assert json_transcript_to_plain_text(42) is None


def test_normalize_loose_title():
    assert normalize_loose_title("Épisode #1: Hello!") == "episode 1 hello"
