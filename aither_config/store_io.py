from __future__ import annotations

import hashlib
import json
import logging
import os
import platform
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

STORE_VERSION = "1.0"
DEFAULT_ENVIRONMENT = "default"


def _detect_format(path: Path) -> str:
    ext = path.suffix.lower().lstrip(".")
    if ext in {"json", "yaml", "yml"}:
        return ext
    # Default to JSON for unknown extensions.
    return "json"


def _yaml():
    try:
        import yaml  # type: ignore
    except Exception as e:  # pragma: no cover
        raise RuntimeError(
            "YAML configuration requested but PyYAML is not available. "
            "Use a .json path or install PyYAML."
        ) from e
    return yaml


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def parse_document(text: str, fmt: str) -> Dict[str, Any]:
    if fmt in {"yaml", "yml"}:
        yaml = _yaml()
        try:
            data = yaml.safe_load(text) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML: {e}") from e
    else:
        data = json.loads(text) if text.strip() else {}

    if not isinstance(data, dict):
        raise ValueError(f"Configuration document must be an object/dict, got {type(data).__name__}")
    return data


def dump_document(data: Dict[str, Any], fmt: str) -> str:
    if fmt in {"yaml", "yml"}:
        return _yaml().safe_dump(data, sort_keys=False, default_flow_style=False)
    return json.dumps(data, indent=2, sort_keys=True) + "\n"


def load_store(path: str | Path) -> Dict[str, Any]:
    p = Path(path)
    if not p.exists():
        return {}
    return parse_document(p.read_text(encoding="utf-8"), _detect_format(p))


def save_store(path: str | Path, store: Dict[str, Any]) -> str:
    """Write the store atomically. Returns the digest of the written bytes."""

    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    payload = dump_document(store, _detect_format(p)).encode("utf-8")

    fd, tmp = tempfile.mkstemp(dir=str(p.parent), prefix=f".{p.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(payload)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, p)
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise

    logger.debug("Saved configuration store to %s (%d bytes)", p, len(payload))
    return hashlib.sha256(payload).hexdigest()


def content_digest(path: str | Path) -> Optional[str]:
    p = Path(path)
    try:
        return hashlib.sha256(p.read_bytes()).hexdigest()
    except FileNotFoundError:
        return None


def new_environment_entry(name: str, description: str = "") -> Dict[str, Any]:
    return {
        "name": name,
        "description": description,
        "created": utc_now(),
        "settings": {},
    }


def ensure_defaults(store: Dict[str, Any]) -> Dict[str, Any]:
    """Fill required keys with sane defaults (without overriding user values)."""

    store.setdefault("version", STORE_VERSION)
    store.setdefault("modules", {})
    store.setdefault("schemas", {})
    store.setdefault("environments", {})
    store.setdefault("hot_reload", {})
    store.setdefault("metadata", {})

    for key in ("modules", "schemas", "environments", "hot_reload", "metadata"):
        if not isinstance(store[key], dict):
            raise ValueError(f"Store key '{key}' must be a mapping, got {type(store[key]).__name__}")

    envs = store["environments"]
    if DEFAULT_ENVIRONMENT not in envs:
        envs[DEFAULT_ENVIRONMENT] = new_environment_entry(DEFAULT_ENVIRONMENT, "Default environment")
    for name, env in envs.items():
        if not isinstance(env, dict):
            raise ValueError(f"Environment '{name}' must be a mapping")
        env.setdefault("name", name)
        env.setdefault("description", "")
        if env.get("settings") is None:
            env["settings"] = {}
        elif not isinstance(env["settings"], dict):
            raise ValueError(f"Environment '{name}' settings must be a mapping")

    current = store.get("current_environment")
    if current not in envs:
        if current is not None:
            logger.warning("Current environment %r does not exist, falling back to %s", current, DEFAULT_ENVIRONMENT)
        store["current_environment"] = DEFAULT_ENVIRONMENT

    store["hot_reload"].setdefault("enabled", False)

    meta = store["metadata"]
    meta.setdefault("created", utc_now())
    meta.setdefault("platform", platform.system())

    return store
