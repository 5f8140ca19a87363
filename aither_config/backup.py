from __future__ import annotations

import logging
import re
import shutil
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from .errors import BackupError

logger = logging.getLogger(__name__)

BACKUP_PREFIX = "configuration-backup-"
_REASON_SAFE = re.compile(r"[^A-Za-z0-9_.-]+")


@dataclass(frozen=True)
class BackupInfo:
    name: str
    path: Path
    created: datetime
    size: int


def _slug(reason: str) -> str:
    return _REASON_SAFE.sub("-", reason).strip("-")[:40]


class BackupManager:
    """Timestamped copies of the store file with a retention cap."""

    def __init__(self, backup_dir: str | Path, keep: int = 10):
        if keep < 1:
            raise ValueError("keep must be >= 1")
        self.backup_dir = Path(backup_dir).expanduser()
        self.keep = keep

    def create(self, store_path: str | Path, reason: Optional[str] = None) -> BackupInfo:
        src = Path(store_path)
        if not src.exists():
            raise BackupError(f"Nothing to back up, store file missing: {src}")

        self.backup_dir.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S-%f")
        suffix = f"-{_slug(reason)}" if reason and _slug(reason) else ""
        ext = src.suffix or ".json"
        seq = 0
        dest = self.backup_dir / f"{BACKUP_PREFIX}{stamp}-{seq:02d}{suffix}{ext}"
        # Coarse clocks can repeat a timestamp; the sequence keeps names unique and sortable.
        while dest.exists():
            seq += 1
            dest = self.backup_dir / f"{BACKUP_PREFIX}{stamp}-{seq:02d}{suffix}{ext}"

        shutil.copy2(str(src), str(dest))
        logger.info("Backed up %s -> %s", src, dest)

        self.prune()
        return self._info(dest)

    def _info(self, p: Path) -> BackupInfo:
        st = p.stat()
        return BackupInfo(
            name=p.name,
            path=p,
            created=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc),
            size=st.st_size,
        )

    def list(self) -> List[BackupInfo]:
        """Backups, newest first."""
        if not self.backup_dir.exists():
            return []
        files = [p for p in self.backup_dir.iterdir() if p.is_file() and p.name.startswith(BACKUP_PREFIX)]
        # Names embed a sortable UTC timestamp.
        files.sort(key=lambda p: p.name, reverse=True)
        return [self._info(p) for p in files]

    def prune(self) -> List[Path]:
        removed: List[Path] = []
        for info in self.list()[self.keep:]:
            info.path.unlink()
            removed.append(info.path)
            logger.info("Removed old backup %s", info.path)
        return removed

    def resolve(self, name_or_path: str | Path) -> Path:
        """Resolve a backup name inside the backup dir, or an existing absolute path."""

        candidate = Path(name_or_path).expanduser()
        if candidate.is_absolute():
            if not candidate.is_file():
                raise BackupError(f"Backup file not found: {candidate}")
            return candidate

        root = self.backup_dir.resolve()
        resolved = (root / candidate).resolve()
        try:
            resolved.relative_to(root)
        except ValueError as e:
            raise BackupError(f"Backup path escapes backup directory: {name_or_path}") from e
        if not resolved.is_file():
            raise BackupError(f"Backup not found: {name_or_path}")
        return resolved
