"""Helper-Funktionen, um statische und dynamische Konfiguration zu trennen.

Die Anwendung liest ``config.ini`` als Basis. Werte, die zur Laufzeit
angepasst werden (z. B. ein anderes Synonym-Verzeichnis oder ein geänderter
Fallback), landen in ``config.runtime.ini``. Aus der zusammengeführten
Konfiguration entsteht :class:`SearchSettings`, das alle übrigen Module
verwenden. ``CATALOG_SEARCH_CONFIG`` zeigt bei Bedarf auf eine andere
Basisdatei, ``CATALOG_DATABASE_URL`` überschreibt die Datenbank-URL.
"""

from __future__ import annotations

import configparser
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent
CONFIG_MAIN_PATH = PROJECT_ROOT / "config.ini"
CONFIG_RUNTIME_PATH = PROJECT_ROOT / "config.runtime.ini"

FALLBACK_POLICIES = ("always", "when_insufficient", "never")
SYNTAX_CHOICES = ("auto", "mysql", "fts5")


@dataclass(frozen=True)
class SearchSettings:
    """Effective settings for synonym loading and the two search tiers."""

    synonyms_enabled: bool = True
    catalog_path: Optional[Path] = PROJECT_ROOT / "data" / "search_synonyms.json"
    database_url: str = "sqlite:///data/catalog.db"
    full_text: bool = True
    fallback: str = "when_insufficient"
    min_results: int = 1
    result_limit: int = 50
    min_full_text_length: int = 3
    syntax: str = "auto"


def _main_path() -> Path:
    override = os.getenv("CATALOG_SEARCH_CONFIG")
    return Path(override) if override else CONFIG_MAIN_PATH


def load_base_config() -> configparser.ConfigParser:
    """Lädt ausschließlich die statische Grundkonfiguration."""
    cfg = configparser.ConfigParser()
    cfg.read(_main_path(), encoding="utf-8-sig")
    return cfg


def load_runtime_config() -> configparser.ConfigParser:
    """Lädt nur die dynamische Laufzeitkonfiguration."""
    cfg = configparser.ConfigParser()
    if CONFIG_RUNTIME_PATH.exists():
        cfg.read(CONFIG_RUNTIME_PATH, encoding="utf-8-sig")
    return cfg


def load_merged_config() -> configparser.ConfigParser:
    """Kombiniert statische und dynamische Konfiguration."""
    base = load_base_config()
    runtime = load_runtime_config()
    for section in runtime.sections():
        if not base.has_section(section):
            base.add_section(section)
        for key, value in runtime.items(section):
            base.set(section, key, value)
    return base


def update_runtime_section(section: str, updates: Dict[str, str]) -> None:
    """Aktualisiert gezielt einen Abschnitt in ``config.runtime.ini``."""
    cfg = load_runtime_config()
    if not cfg.has_section(section):
        cfg.add_section(section)
    for key, value in updates.items():
        cfg.set(section, key, value)
    CONFIG_RUNTIME_PATH.parent.mkdir(parents=True, exist_ok=True)
    with CONFIG_RUNTIME_PATH.open("w", encoding="utf-8") as fh:
        cfg.write(fh)


def _get_flag(cfg: configparser.ConfigParser, section: str, option: str, default: bool) -> bool:
    """Liest einen 0/1-Schalter; ungültige Werte fallen auf ``default`` zurück."""
    if not cfg.has_option(section, option):
        return default
    try:
        return cfg.getint(section, option) == 1
    except ValueError:
        logger.warning(
            "Ignoriere ungueltigen Schalter %s.%s: %s",
            section,
            option,
            cfg.get(section, option, fallback=""),
        )
        return default


def _get_int(
    cfg: configparser.ConfigParser, section: str, option: str, default: int, minimum: int = 0
) -> int:
    """Liest eine Ganzzahl >= ``minimum``; sonst gilt ``default``."""
    if not cfg.has_option(section, option):
        return default
    try:
        value = cfg.getint(section, option)
    except ValueError:
        value = None
    if value is None or value < minimum:
        logger.warning(
            "Ignoriere ungueltigen Wert fuer %s.%s: %s",
            section,
            option,
            cfg.get(section, option, fallback=""),
        )
        return default
    return value


def _get_choice(
    cfg: configparser.ConfigParser, section: str, option: str, choices: tuple[str, ...], default: str
) -> str:
    raw = cfg.get(section, option, fallback=default).strip().lower()
    if raw not in choices:
        logger.warning("Unbekannter Wert fuer %s.%s: %s", section, option, raw)
        return default
    return raw


def resolve_path(value: str) -> Path:
    """Relative Pfade beziehen sich auf das Projektverzeichnis."""
    path = Path(value).expanduser()
    return path if path.is_absolute() else PROJECT_ROOT / path


def load_settings(cfg: Optional[configparser.ConfigParser] = None) -> SearchSettings:
    """Erzeugt :class:`SearchSettings` aus ``cfg`` (Standard: zusammengeführte Konfiguration)."""
    if cfg is None:
        cfg = load_merged_config()
    defaults = SearchSettings()

    catalog_raw = cfg.get("SYNONYMS", "catalog_path", fallback="").strip()
    catalog_path = resolve_path(catalog_raw) if catalog_raw else defaults.catalog_path

    database_url = os.getenv("CATALOG_DATABASE_URL") or cfg.get(
        "SEARCH", "database_url", fallback=defaults.database_url
    ).strip()

    return SearchSettings(
        synonyms_enabled=_get_flag(cfg, "SYNONYMS", "enabled", defaults.synonyms_enabled),
        catalog_path=catalog_path,
        database_url=database_url or defaults.database_url,
        full_text=_get_flag(cfg, "SEARCH", "full_text", defaults.full_text),
        fallback=_get_choice(cfg, "SEARCH", "fallback", FALLBACK_POLICIES, defaults.fallback),
        min_results=_get_int(cfg, "SEARCH", "min_results", defaults.min_results),
        result_limit=_get_int(cfg, "SEARCH", "result_limit", defaults.result_limit, minimum=1),
        min_full_text_length=_get_int(
            cfg, "SEARCH", "min_full_text_length", defaults.min_full_text_length
        ),
        syntax=_get_choice(cfg, "SEARCH", "syntax", SYNTAX_CHOICES, defaults.syntax),
    )
