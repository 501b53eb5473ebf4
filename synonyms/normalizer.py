"""Helpers to normalize terms before comparison."""

from __future__ import annotations

from typing import Iterable, List


def normalize_term(term: str) -> str:
    """Return a standardized representation of ``term`` for matching."""

    if not isinstance(term, str):
        return ""

    # Lowercase and strip whitespace. Accent folding is left to the
    # full-text engine's tokenizer.
    return term.lower().strip()


def normalize_terms(terms: Iterable[str], *, exclude: str = "") -> List[str]:
    """Normalize ``terms``, dropping blanks, duplicates and ``exclude``."""

    seen: set[str] = set()
    result: List[str] = []
    for term in terms:
        norm = normalize_term(term)
        if not norm or norm == exclude or norm in seen:
            continue
        seen.add(norm)
        result.append(norm)
    return result


def split_words(phrase: str) -> List[str]:
    """Split ``phrase`` on whitespace; empty tokens never appear."""

    if not isinstance(phrase, str):
        return []
    return phrase.split()
