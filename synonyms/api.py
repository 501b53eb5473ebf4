"""Flask-Blueprint zur Pflege des Synonymwörterbuchs.

Alle Endpunkte arbeiten auf dem :class:`~synonyms.store.SynonymStore`, den
``server.create_app`` unter ``app.extensions["synonym_store"]`` ablegt.
Änderungen wirken sofort auf laufende Suchen, bleiben aber nur im Speicher,
bis ``POST /api/synonyms/save`` sie in die JSON-Datei schreibt.
"""

from __future__ import annotations

import json
from typing import Any, List, Optional

from flask import Blueprint, Response, current_app, jsonify, request

from .errors import ConfigurationLoadError
from .expander import PhraseExpander, TermExpander
from .normalizer import normalize_term
from .storage import parse_synonym_data
from .store import SynonymStore

bp = Blueprint("synonyms", __name__, url_prefix="/api/synonyms")


def _store() -> SynonymStore:
    return current_app.extensions["synonym_store"]


def _payload() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _synonym_list(value: Any) -> Optional[List[str]]:
    """Akzeptiert eine Liste oder einen kommagetrennten String."""
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    if isinstance(value, list):
        return [str(v) for v in value if isinstance(v, str) and v.strip()]
    return None


def _entry(store: SynonymStore, term: str) -> dict:
    synonyms = store.snapshot().synonyms_of(term)
    return {
        "main_term": term,
        "synonyms": list(synonyms),
        "synonyms_text": ", ".join(synonyms),
        "count": len(synonyms),
    }


@bp.route("/", methods=["GET"])
def list_synonyms() -> Any:
    """Listet alle Hauptbegriffe mit ihren Synonymen."""
    store = _store()
    catalog = store.snapshot()
    entries = [_entry(store, term) for term in catalog.entries]
    return jsonify({"version": catalog.version, "total": len(entries), "entries": entries})


@bp.route("/", methods=["POST"])
def add_synonyms() -> Any:
    """Ergänzt Synonyme zu einem (ggf. neuen) Hauptbegriff."""
    data = _payload()
    main_term = normalize_term(data.get("main_term", ""))
    synonyms = _synonym_list(data.get("synonyms"))
    if not main_term or not synonyms:
        return jsonify({"error": "main_term und synonyms sind erforderlich"}), 400
    store = _store()
    store.add(main_term, synonyms)
    if main_term not in store.snapshot():
        return jsonify({"error": "Keine gültigen Synonyme angegeben"}), 400
    return jsonify(_entry(store, main_term)), 201


@bp.route("/<term>", methods=["PUT"])
def replace_synonyms(term: str) -> Any:
    """Ersetzt die Synonymgruppe von ``term`` vollständig."""
    main_term = normalize_term(term)
    synonyms = _synonym_list(_payload().get("synonyms"))
    if not main_term or synonyms is None:
        return jsonify({"error": "synonyms ist erforderlich"}), 400
    store = _store()
    store.replace(main_term, synonyms)
    if main_term not in store.snapshot():
        return jsonify({"main_term": main_term, "deleted": True})
    return jsonify(_entry(store, main_term))


@bp.route("/<term>", methods=["DELETE"])
def delete_synonyms(term: str) -> Any:
    """Entfernt den Hauptbegriff oder nur die übergebenen Synonyme."""
    main_term = normalize_term(term)
    store = _store()
    if main_term not in store.snapshot():
        return jsonify({"error": f"Hauptbegriff '{main_term}' unbekannt"}), 404
    payload = _payload()
    if "synonyms" in payload:
        synonyms = _synonym_list(payload["synonyms"])
        if synonyms is None:
            return jsonify({"error": "synonyms muss Liste oder Text sein"}), 400
        store.remove(main_term, synonyms)
    else:
        store.remove(main_term)
    if main_term not in store.snapshot():
        return jsonify({"main_term": main_term, "deleted": True})
    return jsonify(_entry(store, main_term))


@bp.route("/test", methods=["POST"])
def test_expansion() -> Any:
    """Zeigt, wie ein Begriff oder eine Phrase erweitert würde."""
    term = _payload().get("term", "")
    if not isinstance(term, str) or not term.strip():
        return jsonify({"error": "term ist erforderlich"}), 400
    store = _store()
    term_expander = TermExpander(store)
    builder = current_app.extensions.get("query_builder")
    return jsonify(
        {
            "original_term": term.strip(),
            "expanded_terms": term_expander.expand_term(term),
            "expanded_phrase": PhraseExpander(term_expander).expand_phrase(term),
            "boolean_query": builder.build_boolean_query(term) if builder else None,
        }
    )


@bp.route("/export", methods=["GET"])
def export_synonyms() -> Any:
    """Liefert das aktuelle Wörterbuch als JSON-Download."""
    body = json.dumps(_store().get_all(), ensure_ascii=False, indent=2)
    return Response(
        body,
        mimetype="application/json",
        headers={"Content-Disposition": "attachment; filename=search_synonyms.json"},
    )


@bp.route("/import", methods=["POST"])
def import_synonyms() -> Any:
    """Übernimmt ein JSON-Wörterbuch; vorhandene Hauptbegriffe werden ersetzt."""
    upload = request.files.get("file")
    raw = upload.read() if upload is not None else request.get_data()
    try:
        data = parse_synonym_data(raw.decode("utf-8-sig"))
    except (ConfigurationLoadError, UnicodeDecodeError) as exc:
        return jsonify({"error": f"Import fehlgeschlagen: {exc}"}), 400
    store = _store()
    imported = store.load_from_mapping(data)
    return jsonify({"imported": imported, "version": store.version})


@bp.route("/save", methods=["POST"])
def save_synonyms() -> Any:
    """Schreibt das aktuelle Wörterbuch in die konfigurierte Datei."""
    store = _store()
    target = current_app.config.get("SYNONYM_CATALOG_PATH") or store.source_path
    if not target:
        return jsonify({"error": "Kein Katalogpfad konfiguriert"}), 400
    try:
        path = store.save(target)
    except OSError as exc:
        current_app.logger.error("Synonymkatalog nicht gespeichert: %s", exc)
        return jsonify({"error": "Speichern fehlgeschlagen"}), 500
    return jsonify({"saved": str(path), "version": store.version})
