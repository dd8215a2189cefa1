"""Host lists (podcast platforms, social hosts, mirrors) from hosts.yaml."""

import functools
from pathlib import Path
from urllib.parse import urlparse

import yaml


_CONFIG_PATH = Path(__file__).resolve().parent / "hosts.yaml"


@functools.lru_cache
def load_hosts() -> dict[str, tuple[str, ...]]:
    """Load host lists from the YAML config file. Result is cached."""
    with open(_CONFIG_PATH) as f:
        data = yaml.safe_load(f) or {}
    return {name: tuple(values or ()) for name, values in data.items()}


def podcast_hosts() -> tuple[str, ...]:
    return load_hosts().get("podcast_hosts", ())


def social_hosts() -> frozenset[str]:
    return frozenset(load_hosts().get("social_hosts", ()))


def mirror_hosts() -> tuple[str, ...]:
    return load_hosts().get("mirror_hosts", ())


def bare_hostname(url: str) -> str:
    """Lowercased hostname without a leading ``www.``, or "" if unparseable."""
    hostname = (urlparse(url).hostname or "").lower()
    return hostname[4:] if hostname.startswith("www.") else hostname


def is_podcast_host(url: str) -> bool:
    """Check if a URL belongs to a known podcast platform.

    Handles subdomains: open.spotify.com matches spotify.com. Amazon Music
    podcast pages match by path.
    """
    parsed = urlparse(url)
    host = bare_hostname(url)
    if not host:
        return False
    if host.startswith("music.amazon.") and "/podcasts/" in parsed.path:
        return True
    return any(host == suffix or host.endswith(f".{suffix}") for suffix in podcast_hosts())
