"""Storage helpers for synonym catalogues.

The persistence layer tolerates the JSON encodings and schema variants that
show up when catalogues are edited by hand or exported from other tools.
Loading normalises every entry and rebuilds the reverse index; saving emits
the plain ``{"main term": ["synonym", ...]}`` format.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Tuple

from .errors import ConfigurationLoadError
from .models import SynonymCatalog, SynonymEntry
from .normalizer import normalize_term, normalize_terms

logger = logging.getLogger(__name__)


def _decode(raw: bytes) -> str:
    for enc in ("utf-8-sig", "utf-16"):
        try:
            return raw.decode(enc)
        except UnicodeDecodeError:
            continue
    return raw.decode("utf-8", errors="replace")


def _string_items(items: Iterable[object]) -> List[str]:
    return [str(s).strip() for s in items if isinstance(s, str) and s.strip()]


def _coerce_synonyms(value: object) -> List[str]:
    """Flatten the supported entry shapes into one list of synonyms."""
    if isinstance(value, list):
        return _string_items(value)
    if isinstance(value, str):
        return [value.strip()] if value.strip() else []
    if isinstance(value, dict):
        syn_val = value.get("synonyms")
        if isinstance(syn_val, dict):
            # per-language blocks, e.g. {"pt": [...], "en": [...]}
            flattened: List[str] = []
            for items in syn_val.values():
                if isinstance(items, list):
                    flattened.extend(_string_items(items))
            return flattened
        if syn_val is None:
            return []
        return _coerce_synonyms(syn_val)
    return []


def parse_synonym_data(text: str) -> Dict[str, List[str]]:
    """Parse JSON ``text`` into a ``main term -> synonyms`` mapping.

    Raises:
        ConfigurationLoadError: if the text is not JSON or not an object.
    """
    if not text.strip():
        return {}
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        cleaned = "".join(ch for ch in text if ch >= " " or ch in "\n\t\r")
        if not cleaned.strip():
            return {}
        try:
            data = json.loads(cleaned)
        except json.JSONDecodeError as exc:
            raise ConfigurationLoadError(f"invalid JSON: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigurationLoadError(
            f"expected an object, got {type(data).__name__}"
        )
    return {str(base): _coerce_synonyms(value) for base, value in data.items()}


def read_synonym_source(path: str | Path) -> Dict[str, List[str]]:
    """Read the raw mapping stored at ``path``.

    A missing file yields an empty mapping. Unreadable or malformed files
    raise :class:`ConfigurationLoadError`.
    """
    p = Path(path)
    if not p.exists():
        logger.warning("Synonymkatalog %s nicht gefunden – leeres Wörterbuch", p)
        return {}
    try:
        raw = p.read_bytes()
    except OSError as exc:
        raise ConfigurationLoadError(f"cannot read {p}: {exc}") from exc
    return parse_synonym_data(_decode(raw))


def normalize_mapping(
    data: Mapping[str, Iterable[str]], *, keep_empty: bool = False
) -> Dict[str, List[str]]:
    """Normalize keys and values of ``data``.

    Blank keys are dropped and a main term never lists itself. Entries left
    without any synonym are dropped unless ``keep_empty`` is set, which
    overlays use to express deletion. When two keys collapse onto the same
    normalized term, the later one wins. Values of any other shape than the
    ones the JSON loader accepts are skipped with a warning.
    """
    result: Dict[str, List[str]] = {}
    for base, values in data.items():
        norm_base = normalize_term(base)
        if not norm_base:
            continue
        if isinstance(values, (tuple, set, frozenset)):
            values = list(values)
        if values is not None and not isinstance(values, (list, str, dict)):
            logger.warning(
                "Ignoriere Synonymgruppe '%s' mit ungueltigem Typ %s",
                norm_base,
                type(values).__name__,
            )
            continue
        syns = normalize_terms(_coerce_synonyms(values), exclude=norm_base)
        if syns or keep_empty:
            result[norm_base] = syns
        else:
            result.pop(norm_base, None)
    return result


def build_catalog(
    data: Mapping[str, Iterable[str]], *, version: int = 0
) -> SynonymCatalog:
    """Return an immutable catalog for the normalized mapping ``data``."""
    entries: Dict[str, SynonymEntry] = {}
    index: Dict[str, List[str]] = {}
    for base, syns in normalize_mapping(data).items():
        entries[base] = SynonymEntry(base, tuple(syns))
        for syn in syns:
            index.setdefault(syn, []).append(base)
    frozen_index: Dict[str, Tuple[str, ...]] = {k: tuple(v) for k, v in index.items()}
    return SynonymCatalog(
        entries=MappingProxyType(entries),
        index=MappingProxyType(frozen_index),
        version=version,
    )


def build_raw_catalog(data: Mapping[str, Iterable[str]]) -> SynonymCatalog:
    """Wrap ``data`` as-is, without normalization, for validation."""
    entries = {
        str(base): SynonymEntry(str(base), tuple(syns)) for base, syns in data.items()
    }
    return SynonymCatalog(entries=MappingProxyType(entries))


def load_synonyms(path: str | Path) -> SynonymCatalog:
    """Return the catalog stored at ``path`` or an empty catalog on failure."""
    try:
        return build_catalog(read_synonym_source(path))
    except ConfigurationLoadError as exc:
        logger.error("Synonymkatalog %s unbrauchbar: %s", path, exc)
        return SynonymCatalog()


def save_synonyms(catalog: SynonymCatalog, path: str | Path) -> None:
    """Persist ``catalog`` as JSON at ``path``."""
    p = Path(path)
    if p.parent and not p.parent.exists():
        p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(
        json.dumps(catalog.as_dict(), ensure_ascii=False, indent=2), encoding="utf-8"
    )


def compare_catalogues(old: SynonymCatalog, new: SynonymCatalog) -> Dict[str, str]:
    """Return status mapping when ``new`` is compared against ``old``.

    The returned dictionary maps each main term to one of the following
    strings:

    ``"added"``     -- present only in ``new``.
    ``"removed"``   -- present only in ``old``.
    ``"changed"``   -- exists in both but the synonym sets differ.
    ``"unchanged"`` -- identical entries.
    """

    statuses: Dict[str, str] = {}
    old_keys = set(old.entries.keys())
    new_keys = set(new.entries.keys())
    for key in old_keys | new_keys:
        if key not in old_keys:
            statuses[key] = "added"
        elif key not in new_keys:
            statuses[key] = "removed"
        elif set(old.synonyms_of(key)) != set(new.synonyms_of(key)):
            statuses[key] = "changed"
        else:
            statuses[key] = "unchanged"
    return statuses


def validate_catalog(catalog: SynonymCatalog) -> None:
    """Raise ``ValueError`` if the catalog contains malformed entries."""
    for base, entry in catalog.entries.items():
        if not isinstance(entry.main_term, str) or not entry.main_term:
            raise ValueError(f"Invalid main term: {base!r}")
        if entry.main_term != base or normalize_term(base) != base:
            raise ValueError(f"Main term not normalized: {base!r}")
        if not isinstance(entry.synonyms, tuple):
            raise ValueError(f"Invalid synonyms for {base}")
        if not entry.synonyms:
            raise ValueError(f"Empty synonym group for {base}")
        if base in entry.synonyms:
            raise ValueError(f"Main term lists itself: {base}")
        if len(set(entry.synonyms)) != len(entry.synonyms):
            raise ValueError(f"Duplicate synonyms for {base}")
        for syn in entry.synonyms:
            if not isinstance(syn, str) or normalize_term(syn) != syn or not syn:
                raise ValueError(f"Invalid synonym for {base}: {syn!r}")
