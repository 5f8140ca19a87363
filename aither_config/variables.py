from __future__ import annotations

import os
import re
from typing import Any, Callable, Mapping, Optional

# ${env:NAME}, ${config:module.key.path} or bare ${NAME} (environment variable).
_PLACEHOLDER = re.compile(r"\$\{(?:(env|config):)?([A-Za-z_][A-Za-z0-9_.\-]*)\}")

MAX_DEPTH = 10

ConfigResolver = Callable[[str], Any]


def _expand_str(
    text: str,
    env: Mapping[str, str],
    resolver: Optional[ConfigResolver],
    depth: int,
) -> Any:
    if depth >= MAX_DEPTH or "${" not in text:
        return text

    def lookup(m: re.Match) -> Optional[Any]:
        scope, name = m.group(1), m.group(2)
        if scope == "config":
            if resolver is None:
                return None
            return resolver(name)
        return env.get(name)

    # A string that is exactly one config placeholder keeps the referenced type.
    whole = _PLACEHOLDER.fullmatch(text)
    if whole and whole.group(1) == "config":
        value = lookup(whole)
        if value is None:
            return text
        return expand_variables(value, env=env, resolver=resolver, _depth=depth + 1)

    def repl(m: re.Match) -> str:
        value = lookup(m)
        return m.group(0) if value is None else str(value)

    out = _PLACEHOLDER.sub(repl, text)
    if out == text:
        return text
    return _expand_str(out, env, resolver, depth + 1)


def expand_variables(
    value: Any,
    *,
    env: Optional[Mapping[str, str]] = None,
    resolver: Optional[ConfigResolver] = None,
    _depth: int = 0,
) -> Any:
    """Expand placeholders in every string of `value`; returns a new structure.

    Unknown names leave the placeholder untouched.
    """

    env = os.environ if env is None else env
    if isinstance(value, str):
        return _expand_str(value, env, resolver, _depth)
    if isinstance(value, Mapping):
        return {k: expand_variables(v, env=env, resolver=resolver, _depth=_depth) for k, v in value.items()}
    if isinstance(value, list):
        return [expand_variables(v, env=env, resolver=resolver, _depth=_depth) for v in value]
    return value
