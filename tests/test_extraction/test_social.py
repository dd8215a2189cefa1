"""Tests for social mirror rotation and blocked-page detection."""

from link_preview.extraction.hosts import mirror_hosts
from link_preview.extraction.social import (
    hash_seed,
    is_anubis_html,
    is_blocked_post_content,
    rotate_hosts,
    to_mirror_urls,
)

POST = "https://x.com/someone/status/1234567890"


def test_mirror_rotation_is_deterministic():
    assert to_mirror_urls(POST) == to_mirror_urls(POST)


def test_mirror_hosts_appear_once():
    urls = to_mirror_urls(POST)
    hosts = [url.split("/")[2] for url in urls]
    assert len(hosts) == len(set(hosts))
    assert sorted(hosts) == sorted(mirror_hosts())


def test_mirror_urls_keep_path_and_query():
    urls = to_mirror_urls("https://twitter.com/someone/status/42?s=20")
    assert all(url.startswith("https://nitter") for url in urls)
    assert all(url.endswith("/someone/status/42?s=20") for url in urls)


def test_non_social_url_has_no_mirrors():
    assert to_mirror_urls("https://example.com/someone/status/1") == []


def test_hash_seed_wraps_to_signed_32_bit():
    assert hash_seed("") == 0
    assert hash_seed("a") == 97
    # 31-multiplier hash overflows for long input and stays in signed range
    value = hash_seed("/someone/status/1234567890" * 4)
    assert -(2**31) <= value < 2**31


def test_rotate_hosts():
    hosts = ("a", "b", "c")
    assert rotate_hosts(hosts, 1) == ["b", "c", "a"]
    assert rotate_hosts(hosts, -4) == ["b", "c", "a"]
    assert rotate_hosts(("a",), 5) == ["a"]


def test_blocked_post_content():
    assert is_blocked_post_content("Something went wrong, but don't fret")
    assert not is_blocked_post_content("A normal post")
    assert not is_blocked_post_content(None)


def test_anubis_interstitial():
    assert is_anubis_html("<title>Making sure you're not a bot!</title><p>Anubis proof-of-work</p>")
    assert not is_anubis_html("<p>regular page</p>")
