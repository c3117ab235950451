"""Normalized string similarity used to align subtitle sequences."""

import re
import unicodedata

import Levenshtein

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_text(text: str) -> str:
    """Lowercases and drops punctuation so only the spoken words compare."""
    stripped = "".join(ch for ch in text if not unicodedata.category(ch).startswith("P"))
    return _WHITESPACE_RE.sub(" ", stripped).lower().strip()


def similarity(source: str, target: str) -> float:
    """
    Similarity in [0, 1]: one minus the Levenshtein distance over the longer length.

    Case and punctuation are ignored.
    """
    if not source and not target:
        return 1.0
    if not source or not target:
        return 0.0
    source = normalize_text(source)
    target = normalize_text(target)
    if source == target:
        return 1.0
    longest = max(len(source), len(target))
    if longest == 0:
        return 1.0
    return 1.0 - Levenshtein.distance(source, target) / longest
