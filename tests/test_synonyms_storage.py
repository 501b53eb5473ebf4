import json

import pytest

from synonyms.errors import ConfigurationLoadError
from synonyms.models import SynonymCatalog, SynonymEntry
from synonyms.storage import (
    build_catalog,
    build_raw_catalog,
    load_synonyms,
    normalize_mapping,
    parse_synonym_data,
    read_synonym_source,
    save_synonyms,
    validate_catalog,
)


def test_load_missing_returns_empty(tmp_path):
    path = tmp_path / "missing.json"
    catalog = load_synonyms(path)
    assert len(catalog) == 0


def test_save_roundtrip(tmp_path):
    catalog = build_catalog({"capacete": ["elmo", "casco"], "azul": ["blue"]})
    path = tmp_path / "nested" / "syn.json"
    save_synonyms(catalog, path)
    raw = json.loads(path.read_text(encoding="utf-8"))
    assert raw == {"capacete": ["elmo", "casco"], "azul": ["blue"]}
    loaded = load_synonyms(path)
    assert loaded.as_dict() == catalog.as_dict()


def test_save_keeps_non_ascii(tmp_path):
    path = tmp_path / "syn.json"
    save_synonyms(build_catalog({"óculos": ["proteção ocular"]}), path)
    assert "proteção ocular" in path.read_text(encoding="utf-8")


def test_load_utf16_file(tmp_path):
    path = tmp_path / "syn.json"
    path.write_text(json.dumps({"foo": ["bar"]}, ensure_ascii=False), encoding="utf-16")
    loaded = load_synonyms(path)
    assert loaded.synonyms_of("foo") == ("bar",)


def test_load_utf8_bom_file(tmp_path):
    path = tmp_path / "syn.json"
    path.write_text(json.dumps({"foo": ["bar"]}), encoding="utf-8-sig")
    assert load_synonyms(path).synonyms_of("foo") == ("bar",)


def test_load_nested_formats(tmp_path):
    data = {
        "foo": {"synonyms": ["bar"]},
        "baz": {"synonyms": {"pt": ["qux"], "en": ["quux"]}},
        "one": "single",
    }
    path = tmp_path / "syn.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    loaded = load_synonyms(path)
    assert loaded.synonyms_of("foo") == ("bar",)
    assert set(loaded.synonyms_of("baz")) == {"qux", "quux"}
    assert loaded.synonyms_of("one") == ("single",)


def test_parse_strips_control_characters():
    text = '{"foo": ["bar"]}\x00'
    assert parse_synonym_data(text) == {"foo": ["bar"]}


def test_parse_rejects_non_object():
    with pytest.raises(ConfigurationLoadError):
        parse_synonym_data('["foo", "bar"]')


def test_read_invalid_json_raises(tmp_path):
    path = tmp_path / "syn.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(ConfigurationLoadError):
        read_synonym_source(path)
    assert len(load_synonyms(path)) == 0


def test_normalize_mapping():
    data = {" Capacete ": ["ELMO", "elmo", " casco", "capacete", ""], "vazio": [], "": ["x"]}
    assert normalize_mapping(data) == {"capacete": ["elmo", "casco"]}
    assert normalize_mapping(data, keep_empty=True)["vazio"] == []


def test_build_catalog_indexes_synonyms():
    catalog = build_catalog({"capacete": ["elmo", "casco"], "chapeu": ["casco"]})
    assert catalog.index["casco"] == ("capacete", "chapeu")
    assert catalog.index["elmo"] == ("capacete",)
    assert catalog.version == 0


def test_validate_catalog():
    validate_catalog(build_catalog({"foo": ["bar"]}))

    with pytest.raises(ValueError):
        validate_catalog(build_raw_catalog({"Foo": ["bar"]}))
    with pytest.raises(ValueError):
        validate_catalog(build_raw_catalog({"foo": []}))
    with pytest.raises(ValueError):
        validate_catalog(build_raw_catalog({"foo": ["foo", "bar"]}))
    with pytest.raises(ValueError):
        validate_catalog(build_raw_catalog({"foo": ["bar", "bar"]}))
    with pytest.raises(ValueError):
        validate_catalog(SynonymCatalog(entries={"foo": SynonymEntry("foo", ("Bar",))}))


def test_normalize_mapping_skips_wrong_shapes(caplog):
    data = {"capacete": 5, "azul": {"synonyms": ["Blue"]}, "luva": None}
    assert normalize_mapping(data) == {"azul": ["blue"]}
    assert "capacete" in caplog.text
