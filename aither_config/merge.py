"""Dictionary helpers: recursive override merge, diffing and dotted paths."""

from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

_MISSING = object()


def merge_configuration(base: Mapping[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    """Merge `override` onto `base` without mutating either.

    Nested mappings present on both sides are merged recursively; for any
    other value the override wins. Keys only in `base` are preserved.
    """

    out: Dict[str, Any] = copy.deepcopy(dict(base or {}))
    for k, v in (override or {}).items():
        if isinstance(v, Mapping) and isinstance(out.get(k), Mapping):
            out[k] = merge_configuration(out[k], v)
        else:
            out[k] = copy.deepcopy(v)
    return out


def merge_many(*layers: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for layer in layers:
        if layer:
            out = merge_configuration(out, layer)
    return out


@dataclass(frozen=True)
class ConfigDifference:
    path: str
    kind: str  # added | removed | changed
    left: Any = None
    right: Any = None


def compare_configuration(
    left: Mapping[str, Any],
    right: Mapping[str, Any],
    *,
    prefix: str = "",
) -> List[ConfigDifference]:
    diffs: List[ConfigDifference] = []
    left = left or {}
    right = right or {}

    for key in set(left) | set(right):
        path = f"{prefix}.{key}" if prefix else str(key)
        lv = left.get(key, _MISSING)
        rv = right.get(key, _MISSING)
        if lv is _MISSING:
            diffs.append(ConfigDifference(path, "added", None, rv))
        elif rv is _MISSING:
            diffs.append(ConfigDifference(path, "removed", lv, None))
        elif isinstance(lv, Mapping) and isinstance(rv, Mapping):
            diffs.extend(compare_configuration(lv, rv, prefix=path))
        elif lv != rv:
            diffs.append(ConfigDifference(path, "changed", lv, rv))

    return sorted(diffs, key=lambda d: d.path)


def _split(path: str) -> List[str]:
    parts = [p for p in path.split(".") if p]
    if not parts:
        raise ValueError(f"Empty key path: {path!r}")
    return parts


def get_path(data: Mapping[str, Any], path: str, default: Any = None) -> Any:
    cur: Any = data
    for part in _split(path):
        if not isinstance(cur, Mapping) or part not in cur:
            return default
        cur = cur[part]
    return cur


def set_path(data: Dict[str, Any], path: str, value: Any) -> Dict[str, Any]:
    parts = _split(path)
    cur = data
    for i, part in enumerate(parts[:-1]):
        nxt = cur.setdefault(part, {})
        if not isinstance(nxt, dict):
            raise TypeError(f"Cannot set '{path}': '{'.'.join(parts[: i + 1])}' is not a mapping")
        cur = nxt
    cur[parts[-1]] = value
    return data
