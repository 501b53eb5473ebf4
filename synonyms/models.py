"""Dataclasses representing synonym catalog structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple


@dataclass(frozen=True)
class SynonymEntry:
    """Single synonym group.

    Attributes:
        main_term: Canonical key of the group, lower-cased and trimmed.
        synonyms: Alternative search tokens in insertion order. Never
            contains ``main_term`` itself.
    """

    main_term: str
    synonyms: Tuple[str, ...] = ()


@dataclass(frozen=True)
class SynonymCatalog:
    """Immutable snapshot of the synonym dictionary.

    ``entries`` keeps the configuration order, which decides the winner of a
    reverse lookup. ``index`` maps every synonym to the main terms that list
    it, in that same order. ``version`` increases with every published
    mutation of the owning store.
    """

    entries: Mapping[str, SynonymEntry] = field(
        default_factory=lambda: MappingProxyType({})
    )
    index: Mapping[str, Tuple[str, ...]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    version: int = 0

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, main_term: object) -> bool:
        return main_term in self.entries

    def synonyms_of(self, main_term: str) -> Tuple[str, ...]:
        entry = self.entries.get(main_term)
        return entry.synonyms if entry else ()

    def first_main_term_for(self, synonym: str) -> Optional[str]:
        """Return the first main term whose group lists ``synonym``."""
        bases = self.index.get(synonym)
        return bases[0] if bases else None

    def as_dict(self) -> Dict[str, List[str]]:
        """Return a mutable copy in the ``main term -> synonyms`` shape."""
        return {base: list(entry.synonyms) for base, entry in self.entries.items()}
