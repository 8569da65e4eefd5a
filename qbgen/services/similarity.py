# qbgen/services/similarity.py
"""Near-duplicate detection against the existing-stem sample (advisory only)."""
from __future__ import annotations

import re
from typing import Iterable, Optional, Tuple

HASH_LENGTH = 50
DEFAULT_THRESHOLD = 0.8
STRICT_THRESHOLD = 0.9

_NON_WORD_RE = re.compile(r"[^\w]")
_NON_WORD_SPACE_RE = re.compile(r"[^\w\s]")


def question_hash(text: str, length: int = HASH_LENGTH) -> str:
    normalized = _NON_WORD_RE.sub("", (text or "").lower())
    return f"{normalized[:length]}_{len(normalized)}"


def _words(text: str) -> set:
    return set(_NON_WORD_SPACE_RE.sub("", (text or "").lower()).split())


def calculate_similarity(a: str, b: str) -> float:
    """Jaccard similarity of the word sets"""
    wa, wb = _words(a), _words(b)
    union = wa | wb
    if not union:
        return 0.0
    return len(wa & wb) / len(union)


def find_similar(stem: str, existing: Iterable[str]) -> Optional[Tuple[str, float]]:
    """
    Most similar existing stem above threshold, or None.
    Hash matches are held to the strict threshold, everything else to the default one.
    """
    target_hash = question_hash(stem)
    best: Optional[Tuple[str, float]] = None
    for other in existing:
        score = calculate_similarity(stem, other)
        threshold = STRICT_THRESHOLD if question_hash(other) == target_hash else DEFAULT_THRESHOLD
        if score > threshold and (best is None or score > best[1]):
            best = (other, round(score, 3))
    return best
