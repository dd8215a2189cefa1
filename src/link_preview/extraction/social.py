"""Social post helpers: mirror rotation and blocked-page detection."""

import re
from urllib.parse import urlparse, urlunparse

from link_preview.extraction.hosts import bare_hostname, mirror_hosts, social_hosts

BLOCKED_POST_PATTERN = re.compile(
    r"something went wrong|try again|privacy related extensions|please disable them and try again",
    re.IGNORECASE,
)
ANUBIS_TOKENS = ("anubis", "proof-of-work", "proof of work", "hashcash", "jshelter")


def hash_seed(value: str) -> int:
    """31-multiplier string hash with signed 32-bit wraparound."""
    result = 0
    for char in value:
        result = (result * 31 + ord(char)) & 0xFFFFFFFF
    return result - 0x100000000 if result >= 0x80000000 else result


def rotate_hosts(hosts: tuple[str, ...], seed: int) -> list[str]:
    if len(hosts) <= 1:
        return list(hosts)
    offset = abs(seed) % len(hosts)
    return list(hosts[offset:]) + list(hosts[:offset])


def to_mirror_urls(url: str) -> list[str]:
    """Mirror URLs for a social post, in a rotation fixed by its path and query.

    The same URL always yields the same order; each mirror appears once.
    Non-social URLs yield an empty list.
    """
    if bare_hostname(url) not in social_hosts():
        return []
    parsed = urlparse(url)
    seed_input = parsed.path + (f"?{parsed.query}" if parsed.query else "")
    rotated = rotate_hosts(mirror_hosts(), hash_seed(seed_input))
    return [urlunparse(parsed._replace(scheme="https", netloc=host)) for host in rotated]


def is_blocked_post_content(content: str | None) -> bool:
    if not content:
        return False
    return bool(BLOCKED_POST_PATTERN.search(content))


def is_anubis_html(html: str | None) -> bool:
    """Proof-of-work interstitials served by some mirrors."""
    if not html:
        return False
    lowered = html.lower()
    if "anubis" not in lowered:
        return False
    return any(token in lowered for token in ANUBIS_TOKENS)
