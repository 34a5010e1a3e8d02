"""Shared utilities for the blocker agent."""
from .hostnames import (
    hostnames_from_matches,
    has_broad_access,
    is_covered,
    match_patterns_for,
    parent_domains,
)

__all__ = [
    'hostnames_from_matches',
    'has_broad_access',
    'is_covered',
    'match_patterns_for',
    'parent_domains',
]
