"""Flask-Server für die synonymbewusste Produktsuche.

Der Server stellt zwei Schnittstellen bereit:

* ``GET /api/search`` führt die zweistufige Katalogsuche aus.
* ``/api/synonyms`` (Blueprint aus :mod:`synonyms.api`) pflegt das
  Synonymwörterbuch zur Laufzeit.

Konfiguration kommt aus ``config.ini``/``config.runtime.ini`` sowie ``.env``.
Gunicorn ruft :func:`create_app` einmal pro Worker auf; lokal startet
``python server.py`` einen Debug-Server.
"""

from __future__ import annotations

import configparser
import logging
import os
import shutil
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from flask import Blueprint, Flask, current_app, jsonify, request

from catalog_repository import CatalogQueryError, SqlCatalogRepository
from product_search import SearchOrchestrator, create_search_components
from runtime_config import load_merged_config, load_settings, resolve_path, SearchSettings
from synonyms.api import bp as synonyms_bp
from synonyms.store import SynonymStore

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"


class SafeEncodingStreamHandler(logging.StreamHandler):
    def emit(self, record):
        """Schreibt Logzeilen robust unter Erhalt nicht-ASCII-Zeichen."""
        try:
            msg = self.format(record)
            stream = self.stream
            # Encode to UTF-8 with replacement for unencodable characters
            stream.write(msg.encode("utf-8", errors="replace").decode("utf-8", errors="ignore") + self.terminator)
            self.flush()
        except Exception:
            self.handleError(record)


class SafeRotatingFileHandler(RotatingFileHandler):
    """Rotating handler that tolerates Windows file locks (e.g. OneDrive/AV)."""

    def rotate(self, source: str, dest: str) -> None:
        try:
            super().rotate(source, dest)
            return
        except PermissionError as exc:
            if getattr(exc, "winerror", None) != 32:
                raise
        # copy and truncate instead of renaming the locked file
        try:
            if os.path.exists(source):
                shutil.copy2(source, dest)
            with open(source, "w", encoding=self.encoding or "utf-8") as fh:
                fh.truncate(0)
        except OSError:
            return


def _level(name: str, default: int) -> int:
    level = logging.getLevelName(name.strip().upper())
    return level if isinstance(level, int) else default


def configure_logging(cfg: configparser.ConfigParser) -> Optional[RotatingFileHandler]:
    """Richtet Root- und Werkzeug-Logger gemäß Abschnitt ``[LOGGING]`` ein.

    Gibt den Datei-Handler zurück, falls Dateilogs aktiv sind.
    """
    console_level = _level(cfg.get("LOGGING", "console_level", fallback="INFO"), logging.INFO)
    formatter = logging.Formatter(LOG_FORMAT)

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()
    root_logger.setLevel(console_level)

    console_handler = SafeEncodingStreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler.setLevel(console_level)
    root_logger.addHandler(console_handler)

    file_handler: Optional[RotatingFileHandler] = None
    file_enabled = cfg.get("LOGGING", "file_enabled", fallback="0").strip() == "1"
    file_path = cfg.get("LOGGING", "file_path", fallback="").strip()
    if file_enabled and file_path:
        try:
            max_bytes = max(0, cfg.getint("LOGGING", "file_max_bytes", fallback=1048576))
            backup_count = max(0, cfg.getint("LOGGING", "file_backup_count", fallback=5))
        except ValueError:
            max_bytes, backup_count = 1048576, 5
        file_level = _level(cfg.get("LOGGING", "file_level", fallback="INFO"), console_level)
        log_path = resolve_path(file_path)
        try:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = SafeRotatingFileHandler(
                log_path,
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding="utf-8",
                delay=True,
            )
        except OSError as exc:
            logger.warning("Dateilogs konnten nicht initialisiert werden: %s", exc)
        else:
            file_handler.setLevel(file_level)
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)
            root_logger.setLevel(min(console_level, file_level))

    # Werkzeug soll die Start-URL immer zeigen
    werkzeug_logger = logging.getLogger("werkzeug")
    werkzeug_logger.setLevel(max(console_level, logging.INFO))
    return file_handler


def _parse_flag(name: str) -> Optional[bool]:
    """Liest einen optionalen Ja/Nein-Parameter aus der Query-String."""
    raw = request.args.get(name)
    if raw is None or raw.strip() == "":
        return None
    value = raw.strip().lower()
    if value in {"1", "true", "yes", "on"}:
        return True
    if value in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"invalid value for '{name}': {raw}")


search_bp = Blueprint("search", __name__, url_prefix="/api")


@search_bp.route("/search", methods=["GET"])
def search_products() -> Any:
    """Sucht Produkte; ``fulltext``/``synonyms`` überschreiben die Konfiguration."""
    orchestrator: SearchOrchestrator = current_app.extensions["search_orchestrator"]
    query = request.args.get("q", "").strip()
    if not query:
        return jsonify({"error": "Parameter 'q' fehlt"}), 400
    try:
        use_full_text = _parse_flag("fulltext")
        use_synonyms = _parse_flag("synonyms")
        limit_raw = request.args.get("limit")
        limit = int(limit_raw) if limit_raw else None
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400
    if limit is not None and limit <= 0:
        return jsonify({"error": "Parameter 'limit' muss positiv sein"}), 400

    try:
        outcome = orchestrator.search_detailed(query, use_full_text, use_synonyms, limit)
    except CatalogQueryError as exc:
        logger.error("Katalogsuche fuer %r fehlgeschlagen: %s", query, exc)
        return jsonify({"error": "Katalog nicht erreichbar"}), 503
    return jsonify(outcome.to_dict())


@search_bp.route("/search/compare", methods=["GET"])
def compare_search() -> Any:
    """Vergleicht die Trefferzahl mit und ohne Synonyme."""
    orchestrator: SearchOrchestrator = current_app.extensions["search_orchestrator"]
    query = request.args.get("q", "").strip()
    if not query:
        return jsonify({"error": "Parameter 'q' fehlt"}), 400
    try:
        counts = orchestrator.compare_synonym_impact(query)
    except CatalogQueryError as exc:
        logger.error("Vergleichssuche fuer %r fehlgeschlagen: %s", query, exc)
        return jsonify({"error": "Katalog nicht erreichbar"}), 503
    return jsonify({"query": query, **counts})


def create_app(
    settings: Optional[SearchSettings] = None,
    store: Optional[SynonymStore] = None,
    orchestrator: Optional[SearchOrchestrator] = None,
) -> Flask:
    """
    Erstellt die Flask-Instanz.
    Gunicorn ruft diese Factory einmal pro Worker auf und bekommt das
    WSGI-Objekt zurück. Ohne ``settings`` liest sie die Konfiguration
    selbst und richtet auch das Logging ein; wer ``settings`` übergibt,
    konfiguriert das Logging selbst. Store und Orchestrator lassen sich
    von außen hereinreichen und teilen sich immer denselben Store.
    """
    if settings is None:
        cfg = load_merged_config()
        configure_logging(cfg)
        settings = load_settings(cfg)
    if orchestrator is None:
        store, orchestrator = create_search_components(settings, store=store)
    elif store is None:
        store = orchestrator.query_builder.expander.store

    app = Flask(__name__)
    # JSON-Antworten mit Umlauten/Akzenten unverändert ausliefern
    app.config.update(
        JSON_AS_ASCII=False,
        SYNONYM_CATALOG_PATH=str(settings.catalog_path) if settings.catalog_path else None,
    )
    app.json.ensure_ascii = False  # type: ignore[attr-defined]
    app.extensions["synonym_store"] = store
    app.extensions["search_orchestrator"] = orchestrator
    app.extensions["query_builder"] = orchestrator.query_builder

    app.register_blueprint(search_bp)
    app.register_blueprint(synonyms_bp)

    @app.route("/api/health")
    def health() -> Any:
        """Bereitschaft inkl. Version des Synonym-Snapshots."""
        return jsonify({"status": "ok", "synonym_version": store.version})

    return app


def _run_local() -> None:
    """Lokaler Debug-Server; legt bei SQLite das Schema an."""
    settings = load_settings()
    repository = SqlCatalogRepository.from_url(settings.database_url)
    if repository.dialect_name == "sqlite":
        db_file = settings.database_url.split("///", 1)[-1]
        if db_file and db_file != ":memory:":
            Path(db_file).parent.mkdir(parents=True, exist_ok=True)
        repository.ensure_schema()
    store, orchestrator = create_search_components(settings, repository)
    local_app = create_app(settings, store, orchestrator)
    port = int(os.environ.get("PORT", 8000))
    # WARNING, damit die URL auch bei hohem Log-Level sichtbar bleibt
    logger.warning("Lokal verfügbar auf http://127.0.0.1:%s", port)
    local_app.run(host="0.0.0.0", port=port, debug=True)


load_dotenv()

if __name__ == "__main__":
    configure_logging(load_merged_config())
    _run_local()
