"""Tests for hostname and match pattern helpers."""
from blocker.utils.constants import ALL_URLS
from blocker.utils.hostnames import (
    has_broad_access,
    hostnames_from_matches,
    is_covered,
    match_patterns_for,
    parent_domains,
)


def test_hostnames_from_matches():
    origins = [
        "*://*.example.com/*",
        "https://news.example.org/*",
        "http://localhost:8080/*",
        "not a pattern",
        "*://*.example.com/*",
    ]
    assert hostnames_from_matches(origins) == ["example.com", "news.example.org", "localhost"]


def test_broad_patterns_become_all_urls():
    for pattern in ("<all_urls>", "*://*/*", "http://*/*", "https://*/*"):
        assert hostnames_from_matches([pattern]) == [ALL_URLS]
    assert has_broad_access(hostnames_from_matches(["<all_urls>"]))
    assert not has_broad_access(["example.com"])


def test_parent_domains():
    assert list(parent_domains("a.b.Example.com")) == [
        "a.b.example.com", "b.example.com", "example.com", "com"
    ]
    assert list(parent_domains("")) == []


def test_is_covered():
    granted = {"example.com"}
    assert is_covered("example.com", granted)
    assert is_covered("www.example.com", granted)
    assert not is_covered("example.org", granted)
    assert not is_covered("notexample.com", granted)
    assert is_covered("anything.org", {ALL_URLS})


def test_match_patterns_for():
    assert match_patterns_for(["b.com", "a.com", "a.com"]) == ["*://*.a.com/*", "*://*.b.com/*"]
    assert match_patterns_for(["a.com", ALL_URLS]) == ["<all_urls>"]
    assert match_patterns_for([]) == []
