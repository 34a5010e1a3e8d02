"""Helpers for turning permission match patterns into hostnames."""
import re
from typing import Iterable, Iterator, List, Set

from .constants import ALL_URLS

_BROAD_PATTERNS = {'<all_urls>', '*://*/*', 'http://*/*', 'https://*/*'}
_MATCH_RE = re.compile(r'^(?:\*|https?|wss?|ftp):\/\/(?:\*\.)?([^\/:*]+)(?::\d+)?\/')


def hostnames_from_matches(origins: Iterable[str]) -> List[str]:
    """Convert origin match patterns into plain hostnames.

    ``<all_urls>`` and the ``*://*/*`` family become ``all-urls``. Patterns
    which cannot be parsed are ignored.
    """
    out: List[str] = []
    for origin in origins:
        if origin in _BROAD_PATTERNS:
            hostname = ALL_URLS
        else:
            match = _MATCH_RE.match(origin)
            if match is None:
                continue
            hostname = match.group(1).lower()
        if hostname not in out:
            out.append(hostname)
    return out


def has_broad_access(hostnames: Iterable[str]) -> bool:
    return ALL_URLS in set(hostnames)


def parent_domains(hostname: str) -> Iterator[str]:
    """Yield ``hostname`` then each of its parent domains."""
    hostname = hostname.lower().strip('.')
    while hostname:
        yield hostname
        pos = hostname.find('.')
        if pos == -1:
            break
        hostname = hostname[pos + 1:]


def is_covered(hostname: str, granted: Set[str]) -> bool:
    """Return True if ``hostname`` falls under one of the granted hostnames."""
    if ALL_URLS in granted:
        return True
    return any(h in granted for h in parent_domains(hostname))


def match_patterns_for(hostnames: Iterable[str]) -> List[str]:
    """Build content-script match patterns for a set of hostnames."""
    patterns: List[str] = []
    for hostname in sorted(set(hostnames)):
        if hostname == ALL_URLS:
            return ['<all_urls>']
        patterns.append(f'*://*.{hostname}/*')
    return patterns
