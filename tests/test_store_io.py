from __future__ import annotations

import json

import pytest
import yaml

from aither_config.store_io import (
    DEFAULT_ENVIRONMENT,
    content_digest,
    ensure_defaults,
    load_store,
    save_store,
)


def test_missing_file_is_empty(tmp_path):
    assert load_store(tmp_path / "nope.json") == {}


def test_json_roundtrip_and_format(tmp_path):
    p = tmp_path / "sub" / "configuration.json"
    digest = save_store(p, {"b": 1, "a": {"x": [1, 2]}})
    text = p.read_text(encoding="utf-8")
    assert text.endswith("\n")
    assert text.index('"a"') < text.index('"b"')
    assert load_store(p) == {"a": {"x": [1, 2]}, "b": 1}
    assert digest == content_digest(p)


def test_yaml_by_extension(tmp_path):
    p = tmp_path / "configuration.yaml"
    save_store(p, {"modules": {"lab": {"port": 22}}})
    assert yaml.safe_load(p.read_text(encoding="utf-8")) == {"modules": {"lab": {"port": 22}}}
    assert load_store(p)["modules"]["lab"]["port"] == 22


def test_unknown_extension_defaults_to_json(tmp_path):
    p = tmp_path / "configuration.cfg"
    save_store(p, {"a": 1})
    assert json.loads(p.read_text(encoding="utf-8")) == {"a": 1}


def test_top_level_must_be_mapping(tmp_path):
    p = tmp_path / "bad.json"
    p.write_text("[1, 2]", encoding="utf-8")
    with pytest.raises(ValueError):
        load_store(p)


@pytest.mark.parametrize("name", ["bad.yaml", "bad.yml"])
def test_malformed_yaml_is_a_value_error(tmp_path, name):
    p = tmp_path / name
    p.write_text("modules: {svc: [unclosed\n", encoding="utf-8")
    with pytest.raises(ValueError) as exc:
        load_store(p)
    assert isinstance(exc.value.__cause__, yaml.YAMLError)


def test_save_leaves_no_temp_files(tmp_path):
    p = tmp_path / "configuration.json"
    save_store(p, {"a": 1})
    save_store(p, {"a": 2})
    assert sorted(x.name for x in tmp_path.iterdir()) == ["configuration.json"]


def test_content_digest_missing(tmp_path):
    assert content_digest(tmp_path / "missing") is None


def test_ensure_defaults_fills_without_overriding():
    store = {"modules": {"lab": {"a": 1}}, "current_environment": "ghost", "environments": {"prod": {}}}
    ensure_defaults(store)
    assert store["modules"] == {"lab": {"a": 1}}
    assert set(store["environments"]) == {"prod", DEFAULT_ENVIRONMENT}
    assert store["environments"]["prod"]["settings"] == {}
    assert store["environments"]["prod"]["name"] == "prod"
    assert store["current_environment"] == DEFAULT_ENVIRONMENT
    assert store["hot_reload"] == {"enabled": False}
    assert "created" in store["metadata"]


def test_ensure_defaults_keeps_valid_current():
    store = {"environments": {"prod": {"settings": {}}}, "current_environment": "prod"}
    assert ensure_defaults(store)["current_environment"] == "prod"


def test_ensure_defaults_rejects_bad_shapes():
    with pytest.raises(ValueError):
        ensure_defaults({"modules": []})
    with pytest.raises(ValueError):
        ensure_defaults({"environments": {"x": "y"}})
