"""Shallow schema validation for module configuration.

A schema is a mapping with a ``properties`` table and an optional
``required`` list::

    {
        "properties": {
            "provider": {"type": "string", "enum": ["opentofu", "terraform"], "default": "opentofu"},
            "port": {"type": "int", "min": 1, "max": 65535},
            "tags": {"type": "array", "max": 10},
            "remote": {"type": "object", "properties": {"url": {"type": "string", "pattern": "^https?://"}}},
        },
        "required": ["provider"],
    }

``min``/``max`` bound numbers, and the length of strings and arrays.
Keys not declared in the schema are accepted as-is.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

TYPE_ALIASES: Dict[str, str] = {
    "string": "string",
    "str": "string",
    "int": "integer",
    "integer": "integer",
    "float": "number",
    "number": "number",
    "double": "number",
    "bool": "boolean",
    "boolean": "boolean",
    "array": "array",
    "list": "array",
    "object": "object",
    "dict": "object",
    "hashtable": "object",
    "any": "any",
}

_KNOWN_RULES = {"type", "default", "min", "max", "enum", "pattern", "required", "description", "properties"}


class SchemaDefinitionError(ValueError):
    pass


@dataclass(frozen=True)
class ValidationIssue:
    path: str
    message: str

    def __str__(self) -> str:
        return f"{self.path}: {self.message}" if self.path else self.message


def _canonical_type(name: Any) -> str:
    if not isinstance(name, str) or name.lower() not in TYPE_ALIASES:
        raise SchemaDefinitionError(f"Unknown schema type: {name!r}")
    return TYPE_ALIASES[name.lower()]


def _properties(schema: Mapping[str, Any]) -> Mapping[str, Any]:
    props = schema.get("properties") or {}
    if not isinstance(props, Mapping):
        raise SchemaDefinitionError("'properties' must be a mapping")
    return props


def validate_schema_definition(schema: Any, *, _prefix: str = "") -> None:
    if not isinstance(schema, Mapping):
        raise SchemaDefinitionError(f"Schema must be a mapping, got {type(schema).__name__}")

    required = schema.get("required")
    if required is not None and not isinstance(required, list):
        raise SchemaDefinitionError(f"{_prefix or 'schema'}: 'required' must be a list of keys")

    for key, rule in _properties(schema).items():
        where = f"{_prefix}.{key}" if _prefix else str(key)
        if not isinstance(rule, Mapping):
            raise SchemaDefinitionError(f"{where}: property rule must be a mapping")

        unknown = set(rule) - _KNOWN_RULES
        if unknown:
            raise SchemaDefinitionError(f"{where}: unknown rule(s) {sorted(unknown)}")

        kind = _canonical_type(rule.get("type", "any"))

        if "enum" in rule and not isinstance(rule["enum"], list):
            raise SchemaDefinitionError(f"{where}: 'enum' must be a list")

        if "pattern" in rule:
            try:
                re.compile(rule["pattern"])
            except (re.error, TypeError) as e:
                raise SchemaDefinitionError(f"{where}: invalid pattern {rule['pattern']!r}: {e}") from e

        lo, hi = rule.get("min"), rule.get("max")
        for bound in (lo, hi):
            if bound is not None and (isinstance(bound, bool) or not isinstance(bound, (int, float))):
                raise SchemaDefinitionError(f"{where}: min/max must be numbers")
        if lo is not None and hi is not None and lo > hi:
            raise SchemaDefinitionError(f"{where}: min ({lo}) is greater than max ({hi})")

        if "properties" in rule:
            if kind != "object":
                raise SchemaDefinitionError(f"{where}: nested 'properties' require type object")
            validate_schema_definition(rule, _prefix=where)


def _type_ok(kind: str, value: Any) -> bool:
    if kind == "any":
        return True
    if kind == "string":
        return isinstance(value, str)
    if kind == "boolean":
        return isinstance(value, bool)
    if kind == "integer":
        return isinstance(value, int) and not isinstance(value, bool)
    if kind == "number":
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if kind == "array":
        return isinstance(value, (list, tuple))
    if kind == "object":
        return isinstance(value, Mapping)
    return False


def _check_value(where: str, rule: Mapping[str, Any], value: Any, check_required: bool = True) -> List[ValidationIssue]:
    issues: List[ValidationIssue] = []
    kind = _canonical_type(rule.get("type", "any"))

    if value is None:
        # Explicit null counts as "not set"; required-ness is checked by the caller.
        return issues

    if not _type_ok(kind, value):
        issues.append(ValidationIssue(where, f"expected {kind}, got {type(value).__name__}"))
        return issues

    lo, hi = rule.get("min"), rule.get("max")
    if lo is not None or hi is not None:
        if kind in {"integer", "number"} or (kind == "any" and isinstance(value, (int, float)) and not isinstance(value, bool)):
            measured, what = value, "value"
        elif isinstance(value, (str, list, tuple)):
            measured, what = len(value), "length"
        else:
            measured, what = None, ""
        if measured is not None:
            if lo is not None and measured < lo:
                issues.append(ValidationIssue(where, f"{what} {measured} is below minimum {lo}"))
            if hi is not None and measured > hi:
                issues.append(ValidationIssue(where, f"{what} {measured} is above maximum {hi}"))

    if "enum" in rule and value not in rule["enum"]:
        issues.append(ValidationIssue(where, f"{value!r} is not one of {rule['enum']!r}"))

    if "pattern" in rule and isinstance(value, str) and re.search(rule["pattern"], value) is None:
        issues.append(ValidationIssue(where, f"{value!r} does not match pattern {rule['pattern']!r}"))

    if kind == "object" and "properties" in rule:
        issues.extend(validate_configuration(value, rule, check_required=check_required, _prefix=where))

    return issues


def validate_configuration(
    config: Any,
    schema: Optional[Mapping[str, Any]],
    *,
    check_required: bool = True,
    _prefix: str = "",
) -> List[ValidationIssue]:
    """Return the list of issues; an empty list means the config is valid.

    With ``check_required=False`` missing required keys are not reported,
    which is how base configurations are checked at registration time
    (environments may still supply them).
    """

    if not schema:
        return []
    if not isinstance(config, Mapping):
        return [ValidationIssue(_prefix, f"expected object, got {type(config).__name__}")]

    issues: List[ValidationIssue] = []
    props = _properties(schema)

    if check_required:
        required = set(schema.get("required") or [])
        required.update(k for k, rule in props.items() if isinstance(rule, Mapping) and rule.get("required") is True)
        for key in sorted(required):
            if config.get(key) is None:
                where = f"{_prefix}.{key}" if _prefix else key
                issues.append(ValidationIssue(where, "required value is missing"))

    for key, rule in props.items():
        if key in config:
            where = f"{_prefix}.{key}" if _prefix else str(key)
            issues.extend(_check_value(where, rule, config[key], check_required))

    return issues


def schema_defaults(schema: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    if not schema:
        return out
    for key, rule in _properties(schema).items():
        if not isinstance(rule, Mapping):
            continue
        if "default" in rule:
            out[key] = rule["default"]
        elif "properties" in rule:
            nested = schema_defaults(rule)
            if nested:
                out[key] = nested
    return out
