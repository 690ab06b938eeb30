from __future__ import annotations

from rapidfuzz.distance import Levenshtein


def levenshtein(a: str, b: str) -> int:
    """Edit distance over code points, unit cost for insert, delete and substitute."""
    return Levenshtein.distance(a, b)


def similarity(a: str, b: str) -> float:
    max_len = max(len(a), len(b))
    if max_len == 0:
        return 1.0
    score = 1.0 - levenshtein(a, b) / max_len
    return min(1.0, max(0.0, score))
