"""Synonymerweiterung für die Produktsuche.

Das Modul überführt einzelne Suchbegriffe und ganze Suchphrasen in die Menge
gleichwertiger Begriffe aus dem :class:`~synonyms.store.SynonymStore`. Jede
Erweiterung liest genau einen Snapshot des Wörterbuchs, sodass parallele
Änderungen nie halb sichtbar werden.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Set

from .normalizer import normalize_term, split_words
from .store import SynonymStore

logger = logging.getLogger(__name__)


def _dedupe(values: Iterable[str]) -> List[str]:
    seen: Set[str] = set()
    deduped: List[str] = []
    for value in values:
        if value not in seen:
            seen.add(value)
            deduped.append(value)
    return deduped


class TermExpander:
    """Erweitert ein einzelnes Wort um seine konfigurierten Synonyme."""

    def __init__(self, store: SynonymStore) -> None:
        self.store = store

    def expand_term(self, term: str) -> List[str]:
        """Gibt ``term`` (normalisiert) samt Synonymen zurück.

        Ist ``term`` selbst ein Hauptbegriff, kommen dessen Synonyme hinzu.
        Taucht ``term`` als Synonym einer Gruppe auf, werden Hauptbegriff und
        alle Geschwister ergänzt – allerdings nur für die erste passende
        Gruppe in Wörterbuchreihenfolge. Das Ergebnis ist dedupliziert und
        enthält den Eingabebegriff immer an erster Stelle.
        """

        normalized = normalize_term(term)
        catalog = self.store.snapshot()

        variants: List[str] = [normalized]
        variants.extend(catalog.synonyms_of(normalized))

        main_term = catalog.first_main_term_for(normalized)
        if main_term is not None:
            variants.append(main_term)
            variants.extend(catalog.synonyms_of(main_term))

        return _dedupe(variants)


class PhraseExpander:
    """Erweitert jedes Wort einer Phrase und liefert einen flachen Begriffssack."""

    def __init__(self, expander: TermExpander) -> None:
        self.expander = expander

    def expand_tokens(self, phrase: str) -> List[str]:
        """Gibt die Vereinigung aller Wort-Erweiterungen von ``phrase`` zurück."""

        terms: List[str] = []
        for word in split_words(phrase):
            terms.extend(self.expander.expand_term(word))
        return _dedupe(terms)

    def expand_phrase(self, phrase: str) -> str:
        """Verbindet :meth:`expand_tokens` mit Leerzeichen.

        Die Reihenfolge ist kein Vertrag, nur die Menge der Begriffe.
        """

        return " ".join(self.expand_tokens(phrase))
