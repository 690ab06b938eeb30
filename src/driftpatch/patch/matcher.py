from __future__ import annotations

from typing import Callable, NamedTuple, Optional, Sequence

from .canonical import canonicalize
from .similarity import similarity

SIMILARITY_THRESHOLD = 0.66

# Confidence codes, best to worst.
FUZZ_EXACT = 0
FUZZ_TRAILING_WS = 1
FUZZ_WS = 100
FUZZ_SIMILAR = 1000


class ContextMatch(NamedTuple):
    index: int
    fuzz: int
    similarity: float

    @property
    def found(self) -> bool:
        return self.index >= 0


def _block(lines: Sequence[str], norm: Optional[Callable[[str], str]] = None) -> str:
    if norm is not None:
        lines = [norm(s) for s in lines]
    return canonicalize("\n".join(lines))


def find_context(
    lines: Sequence[str],
    context: Sequence[str],
    start: int,
    *,
    threshold: float = SIMILARITY_THRESHOLD,
) -> ContextMatch:
    """
    Locate `context` as a contiguous window of `lines` at or after `start`.

    Passes run in order and the first one with a hit wins:
      1. exact (canonicalized) match, first hit, fuzz 0
      2. trailing whitespace ignored, last hit, fuzz 1
      3. surrounding whitespace ignored, last hit, fuzz 100
      4. similarity >= threshold, best hit, fuzz 1000
    Returns index -1 (with the best similarity seen) when nothing matches.
    """
    start = max(0, start)
    n = len(context)
    if n > len(lines) - start:
        return ContextMatch(-1, 0, 0.0)

    positions = range(start, len(lines) - n + 1)

    target = _block(context)
    for i in positions:
        if _block(lines[i : i + n]) == target:
            return ContextMatch(i, FUZZ_EXACT, 1.0)

    for fuzz, norm in ((FUZZ_TRAILING_WS, str.rstrip), (FUZZ_WS, str.strip)):
        target = _block(context, norm)
        hit = -1
        for i in positions:
            if _block(lines[i : i + n], norm) == target:
                hit = i
        if hit != -1:
            return ContextMatch(hit, fuzz, 1.0)

    target = _block(context)
    best_index = -1
    best_score = 0.0
    for i in positions:
        score = similarity(_block(lines[i : i + n]), target)
        if score > best_score:
            best_score = score
            if score >= threshold:
                best_index = i
    if best_index != -1:
        return ContextMatch(best_index, FUZZ_SIMILAR, best_score)
    return ContextMatch(-1, 0, best_score)
