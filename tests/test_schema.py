from __future__ import annotations

import pytest

from aither_config.schema import (
    SchemaDefinitionError,
    ValidationIssue,
    schema_defaults,
    validate_configuration,
    validate_schema_definition,
)

SCHEMA = {
    "properties": {
        "provider": {"type": "string", "enum": ["opentofu", "terraform"], "default": "opentofu"},
        "port": {"type": "int", "min": 1, "max": 65535, "default": 5985},
        "host": {"type": "string", "pattern": r"^[a-z0-9.-]+$"},
        "tags": {"type": "array", "max": 3},
        "remote": {
            "type": "object",
            "properties": {
                "url": {"type": "string", "pattern": "^https?://"},
                "retries": {"type": "int", "min": 0, "default": 3},
            },
        },
    },
    "required": ["host"],
}


def _paths(issues):
    return [i.path for i in issues]


def test_valid_configuration_has_no_issues():
    cfg = {"host": "lab01", "port": 22, "provider": "terraform", "tags": ["a", "b"], "remote": {"url": "https://x"}}
    assert validate_configuration(cfg, SCHEMA) == []


def test_no_schema_means_anything_goes():
    assert validate_configuration({"whatever": object()}, None) == []
    assert validate_configuration({"whatever": 1}, {}) == []


def test_required_missing_and_null():
    assert _paths(validate_configuration({}, SCHEMA)) == ["host"]
    assert _paths(validate_configuration({"host": None}, SCHEMA)) == ["host"]
    assert validate_configuration({}, SCHEMA, check_required=False) == []


def test_required_flag_on_property():
    schema = {"properties": {"token": {"type": "string", "required": True}}}
    issues = validate_configuration({}, schema)
    assert issues == [ValidationIssue("token", "required value is missing")]


def test_type_errors():
    issues = validate_configuration({"host": 5, "port": "22"}, SCHEMA)
    assert sorted(_paths(issues)) == ["host", "port"]
    assert all("expected" in i.message for i in issues)


def test_bool_is_not_an_int_but_int_is_a_number():
    schema = {"properties": {"n": {"type": "int"}, "f": {"type": "number"}}}
    assert _paths(validate_configuration({"n": True}, schema)) == ["n"]
    assert validate_configuration({"f": 3}, schema) == []


def test_range_checks_are_inclusive():
    assert validate_configuration({"host": "h", "port": 1}, SCHEMA) == []
    assert validate_configuration({"host": "h", "port": 65535}, SCHEMA) == []
    issues = validate_configuration({"host": "h", "port": 0}, SCHEMA)
    assert "below minimum" in issues[0].message
    issues = validate_configuration({"host": "h", "port": 70000}, SCHEMA)
    assert "above maximum" in issues[0].message


def test_length_bounds_on_arrays_and_strings():
    issues = validate_configuration({"host": "h", "tags": ["1", "2", "3", "4"]}, SCHEMA)
    assert _paths(issues) == ["tags"]
    assert "length 4" in issues[0].message

    schema = {"properties": {"code": {"type": "string", "min": 2, "max": 3}}}
    assert _paths(validate_configuration({"code": "a"}, schema)) == ["code"]
    assert validate_configuration({"code": "ab"}, schema) == []


def test_enum_and_pattern():
    issues = validate_configuration({"host": "Bad Host!", "provider": "pulumi"}, SCHEMA)
    assert sorted(_paths(issues)) == ["host", "provider"]


def test_nested_object_properties():
    issues = validate_configuration({"host": "h", "remote": {"url": "ftp://x", "retries": -1}}, SCHEMA)
    assert sorted(_paths(issues)) == ["remote.retries", "remote.url"]


def test_undeclared_keys_allowed():
    assert validate_configuration({"host": "h", "extra": {"deep": 1}}, SCHEMA) == []


def test_non_mapping_config():
    issues = validate_configuration(["not", "a", "dict"], SCHEMA)
    assert len(issues) == 1 and "expected object" in issues[0].message


def test_schema_defaults_recurse_into_objects():
    assert schema_defaults(SCHEMA) == {"provider": "opentofu", "port": 5985, "remote": {"retries": 3}}
    assert schema_defaults(None) == {}


@pytest.mark.parametrize(
    "schema",
    [
        ["not", "a", "mapping"],
        {"properties": {"a": {"type": "complex"}}},
        {"properties": {"a": {"type": "string", "enum": "x"}}},
        {"properties": {"a": {"type": "string", "pattern": "("}}},
        {"properties": {"a": {"type": "int", "min": 5, "max": 1}}},
        {"properties": {"a": {"type": "int", "typo_rule": 1}}},
        {"properties": {"a": {"type": "string", "properties": {}}}},
        {"properties": {"a": "string"}},
        {"required": "a"},
    ],
)
def test_bad_schema_definitions(schema):
    with pytest.raises(SchemaDefinitionError):
        validate_schema_definition(schema)


def test_good_schema_definition():
    validate_schema_definition(SCHEMA)
