from __future__ import annotations

import logging
import os
import threading
from pathlib import Path
from typing import Callable, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[Path], None]


def _same_file(a: str | bytes, b: Path) -> bool:
    if isinstance(a, bytes):
        a = os.fsdecode(a)
    return os.path.normcase(os.path.realpath(a)) == os.path.normcase(os.path.realpath(b))


class _StoreFileHandler(FileSystemEventHandler):
    """Forwards events touching the store file to the watcher."""

    def __init__(self, watcher: "HotReloadWatcher"):
        super().__init__()
        self.watcher = watcher

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type not in {"modified", "created", "moved", "closed"}:
            return
        # Atomic saves arrive as a move of a temp file onto the store path.
        target = getattr(event, "dest_path", "") if event.event_type == "moved" else event.src_path
        if target and _same_file(target, self.watcher.path):
            self.watcher.notify()


class HotReloadWatcher:
    """Watch one file via a watchdog observer on its parent directory."""

    def __init__(self, path: str | Path, on_change: ChangeCallback):
        self.path = Path(os.path.abspath(Path(path).expanduser()))
        self.on_change = on_change
        self._observer: Optional[Observer] = None
        self._lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._observer is not None

    def start(self) -> None:
        with self._lock:
            if self._observer is not None:
                return
            self.path.parent.mkdir(parents=True, exist_ok=True)
            observer = Observer()
            observer.schedule(_StoreFileHandler(self), str(self.path.parent), recursive=False)
            observer.daemon = True
            observer.start()
            self._observer = observer
        logger.info("Hot reload watching %s", self.path)

    def stop(self, timeout: float = 5.0) -> None:
        with self._lock:
            observer, self._observer = self._observer, None
        if observer is None:
            return
        observer.stop()
        if observer is not threading.current_thread():
            observer.join(timeout=timeout)
        logger.info("Hot reload stopped for %s", self.path)

    def notify(self) -> None:
        try:
            self.on_change(self.path)
        except Exception:
            # Runs on the observer thread; raising would kill the watch.
            logger.exception("Hot reload callback failed for %s", self.path)
