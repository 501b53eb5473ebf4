import json

import pytest

import server
from catalog_repository import CatalogQueryError, ProductRecord, QuerySyntaxRejection
from product_search import SearchOrchestrator
from runtime_config import SearchSettings
from synonyms.boolean_query import BooleanQueryBuilder
from synonyms.expander import TermExpander
from synonyms.store import SynonymStore


class StubRepository:
    def __init__(self):
        self.full_text = [ProductRecord(id=1, name="Capacete azul", sku="CAP-1")]
        self.substring = [ProductRecord(id=2, name="Elmo", sku="ELM-2")]
        self.full_text_error = None
        self.substring_error = None

    def full_text_search(self, boolean_query, *, limit):
        if self.full_text_error is not None:
            raise self.full_text_error
        return self.full_text[:limit]

    def substring_search(self, needle, *, limit):
        if self.substring_error is not None:
            raise self.substring_error
        return self.substring[:limit]


@pytest.fixture
def repository():
    return StubRepository()


@pytest.fixture
def catalog_path(tmp_path):
    path = tmp_path / "syn.json"
    path.write_text(json.dumps({"capacete": ["elmo", "casco"], "azul": ["blue"]}), encoding="utf-8")
    return path


@pytest.fixture
def app(repository, catalog_path):
    settings = SearchSettings(catalog_path=catalog_path)
    store = SynonymStore(catalog_path)
    orchestrator = SearchOrchestrator(
        repository, BooleanQueryBuilder(TermExpander(store)), settings
    )
    return server.create_app(settings, store, orchestrator)


@pytest.fixture
def client(app):
    return app.test_client()


def test_health(client):
    resp = client.get("/api/health")
    assert resp.status_code == 200
    assert resp.get_json()["status"] == "ok"


def test_search_returns_results(client):
    resp = client.get("/api/search?q=capacete")
    assert resp.status_code == 200
    data = resp.get_json()
    assert data["boolean_query"] == "(+capacete* +elmo* +casco*)"
    assert [r["id"] for r in data["results"]] == [1]
    assert data["degraded"] is False


def test_search_flags_override_settings(client):
    data = client.get("/api/search?q=capacete&fulltext=0").get_json()
    assert [r["id"] for r in data["results"]] == [2]
    data = client.get("/api/search?q=capacete&synonyms=false").get_json()
    assert data["boolean_query"] == "+capacete*"


def test_search_rejects_bad_parameters(client):
    assert client.get("/api/search").status_code == 400
    assert client.get("/api/search?q=capacete&fulltext=maybe").status_code == 400
    assert client.get("/api/search?q=capacete&limit=abc").status_code == 400
    assert client.get("/api/search?q=capacete&limit=0").status_code == 400


def test_search_degrades_on_rejected_query(client, repository):
    repository.full_text_error = QuerySyntaxRejection("syntax error")
    resp = client.get("/api/search?q=capacete")
    assert resp.status_code == 200
    data = resp.get_json()
    assert data["degraded"] is True
    assert [r["id"] for r in data["results"]] == [2]


def test_search_storage_failure(client, repository):
    repository.full_text_error = QuerySyntaxRejection("syntax error")
    repository.substring_error = CatalogQueryError("database gone")
    assert client.get("/api/search?q=capacete").status_code == 503


def test_search_compare(client):
    data = client.get("/api/search/compare?q=capacete").get_json()
    assert data == {
        "query": "capacete",
        "without_synonyms": 1,
        "with_synonyms": 1,
        "difference": 0,
    }


def test_list_synonyms(client):
    data = client.get("/api/synonyms/").get_json()
    assert data["total"] == 2
    entry = data["entries"][0]
    assert entry == {
        "main_term": "capacete",
        "synonyms": ["elmo", "casco"],
        "synonyms_text": "elmo, casco",
        "count": 2,
    }


def test_add_synonyms(client):
    resp = client.post("/api/synonyms/", json={"main_term": "Luva", "synonyms": "luvas, Gloves"})
    assert resp.status_code == 201
    assert resp.get_json()["synonyms"] == ["luvas", "gloves"]
    resp = client.post("/api/synonyms/", json={"main_term": "luva"})
    assert resp.status_code == 400
    resp = client.post("/api/synonyms/", json={"main_term": "bota", "synonyms": ["Bota"]})
    assert resp.status_code == 400


def test_added_synonyms_affect_search(client):
    client.post("/api/synonyms/", json={"main_term": "capacete", "synonyms": ["headset"]})
    data = client.get("/api/search?q=capacete").get_json()
    assert data["boolean_query"] == "(+capacete* +elmo* +casco* +headset*)"


def test_replace_synonyms(client):
    resp = client.put("/api/synonyms/capacete", json={"synonyms": ["headset"]})
    assert resp.get_json()["synonyms"] == ["headset"]
    resp = client.put("/api/synonyms/capacete", json={"synonyms": []})
    assert resp.get_json()["deleted"] is True
    assert client.put("/api/synonyms/capacete", json={}).status_code == 400


def test_delete_synonyms(client):
    resp = client.delete("/api/synonyms/capacete", json={"synonyms": ["elmo"]})
    assert resp.get_json()["synonyms"] == ["casco"]
    resp = client.delete("/api/synonyms/capacete")
    assert resp.get_json()["deleted"] is True
    assert client.delete("/api/synonyms/capacete").status_code == 404


def test_expansion_endpoint(client):
    resp = client.post("/api/synonyms/test", json={"term": "casco azul"})
    data = resp.get_json()
    assert data["original_term"] == "casco azul"
    assert data["boolean_query"] == "(+casco* +capacete* +elmo*) (+azul* +blue*)"
    assert set(data["expanded_phrase"].split()) == {"casco", "capacete", "elmo", "azul", "blue"}
    assert client.post("/api/synonyms/test", json={}).status_code == 400


def test_export(client):
    resp = client.get("/api/synonyms/export")
    assert resp.status_code == 200
    assert "attachment" in resp.headers["Content-Disposition"]
    assert json.loads(resp.get_data(as_text=True)) == {
        "capacete": ["elmo", "casco"],
        "azul": ["blue"],
    }


def test_import_overlays(client):
    resp = client.post("/api/synonyms/import", json={"luva": ["gloves"], "azul": []})
    assert resp.get_json()["imported"] == 2
    data = client.get("/api/synonyms/export").get_json(force=True)
    assert data == {"capacete": ["elmo", "casco"], "luva": ["gloves"]}
    resp = client.post("/api/synonyms/import", data="[1, 2]", content_type="application/json")
    assert resp.status_code == 400


def test_save_writes_catalog(client, catalog_path):
    client.post("/api/synonyms/", json={"main_term": "luva", "synonyms": ["gloves"]})
    resp = client.post("/api/synonyms/save")
    assert resp.status_code == 200
    saved = json.loads(catalog_path.read_text(encoding="utf-8"))
    assert saved["luva"] == ["gloves"]


def test_save_without_path(repository):
    settings = SearchSettings(catalog_path=None)
    store = SynonymStore({"capacete": ["elmo"]})
    orchestrator = SearchOrchestrator(repository, BooleanQueryBuilder(TermExpander(store)), settings)
    client = server.create_app(settings, store, orchestrator).test_client()
    assert client.post("/api/synonyms/save").status_code == 400


def test_configure_logging_with_file(tmp_path):
    import configparser
    import logging

    cfg = configparser.ConfigParser()
    cfg.read_dict(
        {
            "LOGGING": {
                "console_level": "WARNING",
                "file_enabled": "1",
                "file_path": str(tmp_path / "logs" / "search.log"),
                "file_level": "DEBUG",
            }
        }
    )
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    try:
        file_handler = server.configure_logging(cfg)
        assert file_handler is not None
        assert file_handler.level == logging.DEBUG
        assert root.level == logging.DEBUG
        assert any(isinstance(h, server.SafeEncodingStreamHandler) for h in root.handlers)
        logging.getLogger("product_search").debug("Suche nach Capacete")
        file_handler.flush()
        assert "Capacete" in (tmp_path / "logs" / "search.log").read_text(encoding="utf-8")
    finally:
        for handler in root.handlers[:]:
            root.removeHandler(handler)
            handler.close()
        for handler in saved_handlers:
            root.addHandler(handler)
        root.setLevel(saved_level)


def test_passed_store_is_used_for_search(catalog_path):
    settings = SearchSettings(catalog_path=catalog_path, database_url="sqlite://", syntax="mysql")
    store = SynonymStore({"capacete": ["elmo"]})
    app = server.create_app(settings, store=store)
    assert app.extensions["query_builder"].expander.store is store
    client = app.test_client()
    client.post("/api/synonyms/", json={"main_term": "capacete", "synonyms": ["casco"]})
    assert app.extensions["search_orchestrator"].query_builder.build_boolean_query(
        "capacete"
    ) == "(+capacete* +elmo* +casco*)"


def test_passed_orchestrator_provides_store(repository):
    store = SynonymStore({"capacete": ["elmo"]})
    settings = SearchSettings(catalog_path=None)
    orchestrator = SearchOrchestrator(repository, BooleanQueryBuilder(TermExpander(store)), settings)
    app = server.create_app(settings, orchestrator=orchestrator)
    assert app.extensions["synonym_store"] is store


def test_delete_with_empty_synonyms_keeps_group(client):
    resp = client.delete("/api/synonyms/capacete", json={"synonyms": []})
    assert resp.get_json()["synonyms"] == ["elmo", "casco"]
    resp = client.delete("/api/synonyms/capacete", json={"synonyms": ""})
    assert resp.get_json()["synonyms"] == ["elmo", "casco"]
    assert client.delete("/api/synonyms/capacete", json={"synonyms": 3}).status_code == 400


def test_factory_configures_logging(tmp_path, monkeypatch):
    import configparser
    import logging

    cfg = configparser.ConfigParser()
    cfg.read_dict(
        {
            "SYNONYMS": {"catalog_path": str(tmp_path / "syn.json")},
            "SEARCH": {"database_url": "sqlite://"},
            "LOGGING": {
                "console_level": "INFO",
                "file_enabled": "1",
                "file_path": str(tmp_path / "factory.log"),
            },
        }
    )
    monkeypatch.setattr(server, "load_merged_config", lambda: cfg)
    monkeypatch.delenv("CATALOG_DATABASE_URL", raising=False)
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    try:
        app = server.create_app()
        assert any(isinstance(h, server.SafeRotatingFileHandler) for h in root.handlers)
        assert app.config["SYNONYM_CATALOG_PATH"] == str(tmp_path / "syn.json")
    finally:
        for handler in root.handlers[:]:
            root.removeHandler(handler)
            handler.close()
        for handler in saved_handlers:
            root.addHandler(handler)
        root.setLevel(saved_level)
