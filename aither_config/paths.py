from __future__ import annotations

import logging
import os
import platform
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

logger = logging.getLogger(__name__)

STORE_FILENAME = "configuration.json"
DEFAULT_BACKUP_KEEP = 10


def _is_windows() -> bool:
    return platform.system() == "Windows"


def default_store_path(env: Optional[Mapping[str, str]] = None) -> Path:
    """Platform-specific location of the shared configuration file."""

    env = os.environ if env is None else env
    if _is_windows():
        appdata = env.get("APPDATA")
        base = Path(appdata) if appdata else Path.home() / "AppData" / "Roaming"
        return base / "AitherZero" / STORE_FILENAME
    return Path.home() / ".aitherzero" / STORE_FILENAME


def default_backup_dir(store_path: str | Path) -> Path:
    return Path(store_path).expanduser().parent / "backups"


def default_journal_path(store_path: str | Path) -> Path:
    return Path(store_path).expanduser().parent / "events.jsonl"


def _int_from_env(env: Mapping[str, str], key: str, default: int, minimum: Optional[int] = None) -> int:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r (not an integer), using %s", key, raw, default)
        return default
    if minimum is not None and value < minimum:
        logger.warning("Ignoring %s=%r (must be >= %d), using %s", key, raw, minimum, default)
        return default
    return value


@dataclass(frozen=True)
class CoreSettings:
    store_path: Path
    backup_dir: Path
    backup_keep: int = DEFAULT_BACKUP_KEEP
    log_path: Optional[str] = None
    environment: Optional[str] = None

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "CoreSettings":
        env = os.environ if env is None else env

        store = env.get("AITHER_CONFIG_PATH")
        store_path = Path(store).expanduser() if store else default_store_path(env)

        backups = env.get("AITHER_CONFIG_BACKUP_DIR")
        backup_dir = Path(backups).expanduser() if backups else default_backup_dir(store_path)

        return cls(
            store_path=store_path,
            backup_dir=backup_dir,
            backup_keep=_int_from_env(env, "AITHER_CONFIG_BACKUP_KEEP", DEFAULT_BACKUP_KEEP, minimum=1),
            log_path=env.get("AITHER_CONFIG_LOG") or None,
            environment=env.get("AITHER_ENVIRONMENT") or None,
        )

    def with_store_path(self, store_path: str | Path) -> "CoreSettings":
        """Point at another store; the backup dir follows unless set explicitly."""

        p = Path(store_path).expanduser()
        backup_dir = self.backup_dir
        if backup_dir == default_backup_dir(self.store_path):
            backup_dir = default_backup_dir(p)
        return CoreSettings(
            store_path=p,
            backup_dir=backup_dir,
            backup_keep=self.backup_keep,
            log_path=self.log_path,
            environment=self.environment,
        )
