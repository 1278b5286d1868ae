"""Name patterns used to select namespaces, kinds and groups.

A pattern is either empty or ``*`` (matches anything), ``-`` (matches only
the empty value), a string that may contain ``*`` wildcards, or several
such patterns separated by commas.
"""

from __future__ import annotations

import re
from collections.abc import Iterable


def _split_patterns(pattern: str) -> list[str]:
    return [part.strip() for part in pattern.split(",") if part.strip()]


def match_single_pattern(pattern: str, value: str) -> bool:
    """Match ``value`` against one pattern without comma handling."""
    if pattern in ("", "*"):
        return True
    if pattern == "-" and value == "":
        return True
    if "*" in pattern:
        regex = ".*".join(re.escape(part) for part in pattern.split("*"))
        return re.fullmatch(regex, value, flags=re.DOTALL) is not None
    return pattern == value


def match_pattern(pattern: str, value: str) -> bool:
    """Match ``value`` against a pattern that may list alternatives with commas."""
    if "," in pattern:
        return match_with_pattern_array(value, _split_patterns(pattern))
    return match_single_pattern(pattern, value)


def match_with_pattern_array(value: str, patterns: Iterable[str]) -> bool:
    """Return True if ``value`` matches any of ``patterns``."""
    return any(match_pattern(pattern, value) for pattern in patterns)