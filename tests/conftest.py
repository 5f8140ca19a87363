# tests/conftest.py
from __future__ import annotations

import logging

import pytest

from aither_config.core import ConfigurationCore
from aither_config.paths import CoreSettings

LAB_SCHEMA = {
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


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch):
    for key in (
        "AITHER_CONFIG_PATH",
        "AITHER_CONFIG_BACKUP_DIR",
        "AITHER_CONFIG_BACKUP_KEEP",
        "AITHER_CONFIG_LOG",
        "AITHER_ENVIRONMENT",
    ):
        monkeypatch.delenv(key, raising=False)
    yield


@pytest.fixture
def settings(tmp_path) -> CoreSettings:
    return CoreSettings(
        store_path=tmp_path / "configuration.json",
        backup_dir=tmp_path / "backups",
        backup_keep=3,
    )


@pytest.fixture
def core(settings):
    c = ConfigurationCore(settings=settings).initialize()
    try:
        yield c
    finally:
        c.close()


@pytest.fixture
def lab_core(core):
    """Core with a 'lab' module registered and a valid host set in default."""
    core.register_module("lab", schema=LAB_SCHEMA, defaults={"tags": ["a"]})
    core.set_module_configuration("lab", {"host": "lab01"})
    return core


@pytest.fixture
def root_logging():
    """Undo configure_logging() side effects on the root logger."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield root
    for h in list(root.handlers):
        if h not in handlers:
            root.removeHandler(h)
            h.close()
    root.setLevel(level)
    for attr in ("_aither_configured", "_aither_log_path"):
        if hasattr(root, attr):
            delattr(root, attr)
