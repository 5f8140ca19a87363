from __future__ import annotations

import pytest

from aither_config.merge import (
    ConfigDifference,
    compare_configuration,
    get_path,
    merge_configuration,
    merge_many,
    set_path,
)


def test_override_wins_and_base_keys_survive():
    base = {"a": 1, "b": {"x": 1, "y": 2}, "keep": True}
    override = {"a": 2, "b": {"y": 20, "z": 30}}
    out = merge_configuration(base, override)
    assert out == {"a": 2, "b": {"x": 1, "y": 20, "z": 30}, "keep": True}


def test_inputs_not_mutated():
    base = {"b": {"x": 1}}
    override = {"b": {"x": 2}, "l": [1]}
    out = merge_configuration(base, override)
    out["b"]["x"] = 99
    out["l"].append(2)
    assert base == {"b": {"x": 1}}
    assert override == {"b": {"x": 2}, "l": [1]}


def test_non_mapping_replaces_mapping_and_vice_versa():
    assert merge_configuration({"a": {"x": 1}}, {"a": 5}) == {"a": 5}
    assert merge_configuration({"a": 5}, {"a": {"x": 1}}) == {"a": {"x": 1}}
    # Lists are leaves: replaced, never concatenated.
    assert merge_configuration({"a": [1, 2]}, {"a": [3]}) == {"a": [3]}


def test_merge_many_is_left_to_right():
    assert merge_many({"a": 1}, None, {"a": 2, "b": 1}, {"b": 3}) == {"a": 2, "b": 3}
    assert merge_many() == {}


def test_compare_reports_added_removed_changed_sorted():
    left = {"a": 1, "n": {"x": 1, "gone": True}, "same": "s"}
    right = {"a": 2, "n": {"x": 1, "new": [1]}, "same": "s"}
    diffs = compare_configuration(left, right)
    assert diffs == [
        ConfigDifference("a", "changed", 1, 2),
        ConfigDifference("n.gone", "removed", True, None),
        ConfigDifference("n.new", "added", None, [1]),
    ]


def test_compare_prefix():
    diffs = compare_configuration({"a": 1}, {"a": 2}, prefix="mod")
    assert [d.path for d in diffs] == ["mod.a"]


def test_get_and_set_path():
    data = {}
    set_path(data, "remote.auth.user", "admin")
    assert data == {"remote": {"auth": {"user": "admin"}}}
    assert get_path(data, "remote.auth.user") == "admin"
    assert get_path(data, "remote.missing", "dflt") == "dflt"
    assert get_path(data, "remote.auth.user.deeper") is None


def test_set_path_through_scalar_fails():
    data = {"remote": "flat"}
    with pytest.raises(TypeError):
        set_path(data, "remote.url", "x")


def test_empty_path_rejected():
    with pytest.raises(ValueError):
        get_path({}, "..")
