"""Edit-distance similarity for duplicate suppression and repetition scoring."""
from typing import Sequence

from .text_normalizer import normalize_text


def levenshtein_distance(a: str, b: str) -> int:
    """Minimum single-character insertions, deletions and substitutions."""
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)

    # Two-row dynamic programme; iterate over the shorter string
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            cost = 0 if char_a == char_b else 1
            current.append(min(
                previous[j] + 1,         # deletion
                current[j - 1] + 1,      # insertion
                previous[j - 1] + cost,  # substitution
            ))
        previous = current
    return previous[-1]


def similarity(a: str, b: str) -> float:
    """Normalized similarity ``1 - distance / max(len(a), len(b))``.

    Comparison is case-insensitive and ignores surrounding whitespace.
    Identical non-empty strings score 1.0; an empty operand scores 0.0.
    """
    s1 = normalize_text(a)
    s2 = normalize_text(b)
    if not s1 or not s2:
        return 0.0
    if s1 == s2:
        return 1.0
    return 1.0 - levenshtein_distance(s1, s2) / max(len(s1), len(s2))


def max_similarity(text: str, candidates: Sequence[str]) -> float:
    return max((similarity(text, c) for c in candidates), default=0.0)
