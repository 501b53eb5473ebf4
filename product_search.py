"""Zweistufige Produktsuche mit Synonymerweiterung.

Stufe 1 schickt eine Boolean-Mode-Anfrage (optional synonymerweitert) an den
Volltextindex des Katalogs. Stufe 2 sucht die unveränderte Eingabe als
Teilstring in Name, Beschreibung und SKU. Welche Stufen laufen, entscheiden
die Schalter des Aufrufs und die Fallback-Politik aus ``config.ini``; die
Treffer werden nach Produkt-ID dedupliziert, Volltexttreffer zuerst.

Als Skript vergleicht das Modul eine Suche mit und ohne Synonyme::

    python product_search.py "capacete azul" --limit 10
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Optional, Tuple

from catalog_repository import (
    CatalogQueryError,
    CatalogRepository,
    ProductRecord,
    SqlCatalogRepository,
)
from runtime_config import SearchSettings, load_settings
from synonyms.boolean_query import BooleanQueryBuilder, get_syntax
from synonyms.expander import TermExpander
from synonyms.store import SynonymStore

logger = logging.getLogger(__name__)


@dataclass
class SearchOutcome:
    """Ergebnis einer Suche inklusive Diagnosedaten pro Stufe."""

    query: str
    boolean_query: str = ""
    records: List[ProductRecord] = field(default_factory=list)
    full_text_hits: int = 0
    fallback_hits: int = 0
    full_text_used: bool = False
    fallback_used: bool = False
    degraded: bool = False

    def to_dict(self) -> Dict[str, object]:
        return {
            "query": self.query,
            "boolean_query": self.boolean_query,
            "full_text_hits": self.full_text_hits,
            "fallback_hits": self.fallback_hits,
            "full_text_used": self.full_text_used,
            "fallback_used": self.fallback_used,
            "degraded": self.degraded,
            "results": [record.to_dict() for record in self.records],
        }


def merge_results(
    primary: Iterable[ProductRecord],
    secondary: Iterable[ProductRecord],
    limit: Optional[int] = None,
) -> List[ProductRecord]:
    """Hängt ``secondary`` an ``primary`` an, ohne doppelte Produkt-IDs."""
    merged: List[ProductRecord] = []
    seen: set[int] = set()
    for record in (*primary, *secondary):
        if record.id in seen:
            continue
        seen.add(record.id)
        merged.append(record)
        if limit is not None and len(merged) >= limit:
            break
    return merged


class SearchOrchestrator:
    """Koordiniert Volltext- und Teilstring-Stufe gegen das Katalog-Repository."""

    def __init__(
        self,
        repository: CatalogRepository,
        query_builder: BooleanQueryBuilder,
        settings: Optional[SearchSettings] = None,
    ) -> None:
        self.repository = repository
        self.query_builder = query_builder
        self.settings = settings or SearchSettings()

    def search(
        self,
        raw_query: str,
        use_full_text: Optional[bool] = None,
        use_synonyms: Optional[bool] = None,
        limit: Optional[int] = None,
    ) -> List[ProductRecord]:
        """Gibt die zusammengeführten Treffer für ``raw_query`` zurück."""
        return self.search_detailed(raw_query, use_full_text, use_synonyms, limit).records

    def search_detailed(
        self,
        raw_query: str,
        use_full_text: Optional[bool] = None,
        use_synonyms: Optional[bool] = None,
        limit: Optional[int] = None,
    ) -> SearchOutcome:
        """Wie :meth:`search`, liefert aber zusätzlich die Diagnosedaten.

        Fehler der Volltextstufe werden protokolliert und führen zur
        Teilstring-Suche; nur Fehler der Teilstring-Suche erreichen den
        Aufrufer. Eine leere Anfrage ergibt ein leeres Ergebnis.
        """
        settings = self.settings
        if use_full_text is None:
            use_full_text = settings.full_text
        if use_synonyms is None:
            use_synonyms = settings.synonyms_enabled
        limit = limit if limit and limit > 0 else settings.result_limit

        query = raw_query.strip() if isinstance(raw_query, str) else ""
        outcome = SearchOutcome(query=query)
        if not query:
            return outcome

        if use_synonyms:
            outcome.boolean_query = self.query_builder.build_boolean_query(query)
        else:
            outcome.boolean_query = self.query_builder.build_literal_query(query)

        full_text_records: List[ProductRecord] = []
        run_full_text = (
            use_full_text
            and bool(outcome.boolean_query)
            and len(query) >= settings.min_full_text_length
        )
        if run_full_text:
            outcome.full_text_used = True
            try:
                full_text_records = self.repository.full_text_search(
                    outcome.boolean_query, limit=limit
                )
            except CatalogQueryError as exc:
                outcome.degraded = True
                logger.warning(
                    "Volltextsuche fuer %r fehlgeschlagen (%s: %s), nutze Teilstring-Suche",
                    query,
                    type(exc).__name__,
                    exc,
                )
        outcome.full_text_hits = len(full_text_records)

        fallback_records: List[ProductRecord] = []
        if self._needs_fallback(run_full_text, outcome.degraded, len(full_text_records)):
            outcome.fallback_used = True
            fallback_records = self.repository.substring_search(query, limit=limit)
        outcome.fallback_hits = len(fallback_records)

        outcome.records = merge_results(full_text_records, fallback_records, limit)
        logger.debug(
            "Suche %r: %d Volltext, %d Teilstring, %d gesamt",
            query,
            outcome.full_text_hits,
            outcome.fallback_hits,
            len(outcome.records),
        )
        return outcome

    def _needs_fallback(self, ran_full_text: bool, degraded: bool, hits: int) -> bool:
        if not ran_full_text or degraded:
            return True
        policy = self.settings.fallback
        if policy == "always":
            return True
        if policy == "when_insufficient":
            return hits < max(self.settings.min_results, 1)
        return False

    def compare_synonym_impact(
        self, raw_query: str, limit: Optional[int] = None
    ) -> Dict[str, int]:
        """Zählt Treffer mit und ohne Synonyme (Volltext aktiv)."""
        without = self.search(raw_query, use_full_text=True, use_synonyms=False, limit=limit)
        with_synonyms = self.search(raw_query, use_full_text=True, use_synonyms=True, limit=limit)
        return {
            "without_synonyms": len(without),
            "with_synonyms": len(with_synonyms),
            "difference": len(with_synonyms) - len(without),
        }


def create_search_components(
    settings: SearchSettings,
    repository: Optional[SqlCatalogRepository] = None,
    store: Optional[SynonymStore] = None,
) -> Tuple[SynonymStore, SearchOrchestrator]:
    """Baut Store, Query-Builder und Orchestrator aus ``settings`` zusammen.

    Ein übergebener ``store`` wird übernommen, sonst entsteht einer für
    ``settings.catalog_path``.
    """
    if store is None:
        store = SynonymStore(settings.catalog_path)
    if repository is None:
        repository = SqlCatalogRepository.from_url(settings.database_url)
    syntax_name = settings.syntax
    if syntax_name == "auto":
        syntax_name = repository.syntax_name
    builder = BooleanQueryBuilder(TermExpander(store), get_syntax(syntax_name))
    return store, SearchOrchestrator(repository, builder, settings)


def _print_records(title: str, records: List[ProductRecord]) -> None:
    print(title)
    if not records:
        print("   No products found")
    for record in records:
        print(f"   - {record.name} (SKU: {record.sku or 'N/A'})")
    print()


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Compare a catalog search with and without synonyms"
    )
    parser.add_argument("query", help="search phrase")
    parser.add_argument("--database-url", default=None, help="SQLAlchemy URL of the catalog")
    parser.add_argument("--catalog", default=None, help="synonym catalogue (JSON)")
    parser.add_argument("--limit", type=int, default=5, help="results per variant")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="increase verbosity")
    args = parser.parse_args(argv)

    level = logging.WARNING
    if args.verbose == 1:
        level = logging.INFO
    elif args.verbose >= 2:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")

    settings = load_settings()
    if args.database_url:
        settings = replace(settings, database_url=args.database_url)
    if args.catalog:
        settings = replace(settings, catalog_path=args.catalog)
    _, orchestrator = create_search_components(settings)

    print(f"Testing search for: '{args.query}'\n")
    print(f"Boolean query: {orchestrator.query_builder.build_boolean_query(args.query)}\n")
    try:
        without = orchestrator.search(args.query, True, False, args.limit)
        with_synonyms = orchestrator.search(args.query, True, True, args.limit)
    except CatalogQueryError as exc:
        print(f"Search failed: {exc}", file=sys.stderr)
        return 1
    _print_records("Search WITHOUT synonyms:", without)
    _print_records("Search WITH synonyms:", with_synonyms)

    improvement = len(with_synonyms) - len(without)
    print(f"Without synonyms: {len(without)} products")
    print(f"With synonyms: {len(with_synonyms)} products")
    if improvement > 0:
        print(f"Improvement: +{improvement} products found")
    elif improvement < 0:
        print(f"Reduction: {improvement} products found")
    else:
        print("No difference in results")
    return 0


if __name__ == "__main__":
    sys.exit(main())
