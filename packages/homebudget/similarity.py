"""Normalized string similarity used by the reconciliation matcher.

``string_similarity`` returns 1.0 for an exact match, 0.8 when one string
contains the other, and otherwise blends word overlap (0.6) with
Levenshtein similarity (0.4). Both inputs are lower-cased and whitespace
collapsed first; an empty side scores 0.0.
"""

from __future__ import annotations

from rapidfuzz.distance import Levenshtein

EXACT_SCORE = 1.0
CONTAINS_SCORE = 0.8
_OVERLAP_WEIGHT = 0.6
_EDIT_WEIGHT = 0.4


def normalize_text(value: str | None) -> str:
    if not value:
        return ""
    return " ".join(value.lower().split())


def word_overlap(a: str, b: str) -> float:
    """Share of words in common, relative to the longer word list."""

    words_a = a.split()
    words_b = b.split()
    if not words_a or not words_b:
        return 0.0
    other = set(words_b)
    common = sum(1 for w in words_a if w in other)
    return min(1.0, common / max(len(words_a), len(words_b)))


def string_similarity(a: str | None, b: str | None) -> float:
    left = normalize_text(a)
    right = normalize_text(b)
    if not left or not right:
        return 0.0
    if left == right:
        return EXACT_SCORE
    if left in right or right in left:
        return CONTAINS_SCORE
    edit = Levenshtein.normalized_similarity(left, right)
    return _OVERLAP_WEIGHT * word_overlap(left, right) + _EDIT_WEIGHT * edit


__all__ = ["normalize_text", "string_similarity", "word_overlap"]
