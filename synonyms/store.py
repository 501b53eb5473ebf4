"""Process-wide synonym dictionary with snapshot publishing.

One :class:`SynonymStore` is created at service start and handed to the
expanders, the query builder and the search orchestrator. Readers grab the
current :class:`~synonyms.models.SynonymCatalog` snapshot without locking;
every mutation runs under a mutex, builds a fresh snapshot and publishes it
with a single attribute assignment.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Union

from . import storage
from .errors import ConfigurationLoadError
from .models import SynonymCatalog
from .normalizer import normalize_term, normalize_terms

logger = logging.getLogger(__name__)

SynonymSource = Union[str, Path, Mapping[str, Iterable[str]]]


class SynonymStore:
    """Owner of the ``main term -> synonyms`` dictionary.

    ``source`` is either a path to a JSON catalogue or an in-memory mapping.
    Nothing is read until the first access.
    """

    def __init__(self, source: Optional[SynonymSource] = None) -> None:
        self._source = source
        self._lock = threading.Lock()
        self._catalog: Optional[SynonymCatalog] = None

    @property
    def source_path(self) -> Optional[Path]:
        if isinstance(self._source, (str, Path)):
            return Path(self._source)
        return None

    @property
    def version(self) -> int:
        return self.snapshot().version

    # -- lifecycle ---------------------------------------------------------

    def initialize(self) -> None:
        """Load the configured source once; later calls are no-ops."""
        if self._catalog is not None:
            return
        with self._lock:
            self._ensure_loaded_locked()

    def _ensure_loaded_locked(self) -> SynonymCatalog:
        if self._catalog is None:
            self._catalog = storage.build_catalog(self._read_source())
            logger.info(
                "Synonymwörterbuch geladen: %d Einträge", len(self._catalog)
            )
        return self._catalog

    def _read_source(self) -> Dict[str, List[str]]:
        source = self._source
        if source is None:
            return {}
        if isinstance(source, Mapping):
            return storage.normalize_mapping(source)
        if not isinstance(source, (str, Path)):
            logger.error(
                "Synonymquelle vom Typ %s unbrauchbar, starte leer", type(source).__name__
            )
            return {}
        try:
            return storage.read_synonym_source(source)
        except ConfigurationLoadError as exc:
            logger.error("Synonymkatalog %s unbrauchbar, starte leer: %s", source, exc)
            return {}

    def _publish_locked(self, data: Mapping[str, Iterable[str]]) -> SynonymCatalog:
        current = self._ensure_loaded_locked()
        catalog = storage.build_catalog(data, version=current.version + 1)
        self._catalog = catalog
        return catalog

    # -- reads -------------------------------------------------------------

    def snapshot(self) -> SynonymCatalog:
        """Return the current immutable catalog, loading it if necessary."""
        catalog = self._catalog
        if catalog is None:
            with self._lock:
                catalog = self._ensure_loaded_locked()
        return catalog

    def get_all(self) -> Dict[str, List[str]]:
        """Return a copy of the whole dictionary."""
        return self.snapshot().as_dict()

    # -- mutations ---------------------------------------------------------

    def add(self, main_term: str, synonyms: Iterable[str]) -> None:
        """Merge ``synonyms`` into the group of ``main_term``."""
        base = normalize_term(main_term)
        if not base:
            logger.warning("Leerer Hauptbegriff ignoriert")
            return
        incoming = normalize_terms(synonyms, exclude=base)
        with self._lock:
            data = self._ensure_loaded_locked().as_dict()
            merged = normalize_terms([*data.get(base, []), *incoming], exclude=base)
            if not merged:
                return
            data[base] = merged
            self._publish_locked(data)
        logger.info("Synonyme für '%s' ergänzt: %s", base, ", ".join(incoming))

    def remove(
        self, main_term: str, synonyms_to_remove: Optional[Iterable[str]] = None
    ) -> None:
        """Drop the whole group or only ``synonyms_to_remove`` from it.

        A group that ends up empty is deleted. Unknown main terms are ignored.
        """
        base = normalize_term(main_term)
        with self._lock:
            data = self._ensure_loaded_locked().as_dict()
            if base not in data:
                return
            if synonyms_to_remove is None:
                del data[base]
            else:
                dropped = set(normalize_terms(synonyms_to_remove))
                remaining = [s for s in data[base] if s not in dropped]
                if remaining:
                    data[base] = remaining
                else:
                    del data[base]
            self._publish_locked(data)
        logger.info("Synonyme für '%s' entfernt", base)

    def replace(self, main_term: str, synonyms: Iterable[str]) -> None:
        """Overwrite the group of ``main_term`` with exactly ``synonyms``."""
        self.load_from_mapping({main_term: list(synonyms)})

    def load_from_mapping(self, data: Mapping[str, Iterable[str]]) -> int:
        """Overlay ``data``: incoming keys replace existing groups entirely.

        Returns the number of main terms touched.
        """
        incoming = storage.normalize_mapping(data, keep_empty=True)
        if not incoming:
            return 0
        with self._lock:
            merged = self._ensure_loaded_locked().as_dict()
            merged.update(incoming)
            self._publish_locked(merged)
        return len(incoming)

    def load_from_file(self, path: str | Path) -> bool:
        """Overlay the catalogue at ``path``; returns ``False`` if unusable."""
        p = Path(path)
        if not p.exists():
            logger.warning("Synonymdatei %s nicht gefunden", p)
            return False
        try:
            data = storage.read_synonym_source(p)
        except ConfigurationLoadError as exc:
            logger.error("Synonymdatei %s ignoriert: %s", p, exc)
            return False
        count = self.load_from_mapping(data)
        logger.info("%d Synonymgruppen aus %s übernommen", count, p)
        return True

    def save(self, path: str | Path | None = None) -> Path:
        """Persist the current snapshot to ``path`` or the source file."""
        target = Path(path) if path is not None else self.source_path
        if target is None:
            raise ValueError("no catalogue path configured")
        storage.save_synonyms(self.snapshot(), target)
        logger.info("Synonymkatalog gespeichert: %s", target)
        return target
