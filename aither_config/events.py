from __future__ import annotations

import json
import logging
import threading
import time
import uuid
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

ALL_EVENTS = "*"
DEFAULT_HISTORY = 100


@dataclass(frozen=True)
class ConfigurationEvent:
    name: str
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)
    event_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.event_id, "event": self.name, "ts": self.timestamp, "data": self.data}


EventHandler = Callable[[ConfigurationEvent], Any]


@dataclass(frozen=True)
class EventJournal:
    """Append-only JSONL record of published events."""

    path: Path

    def log(self, event: ConfigurationEvent) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(event.to_dict(), sort_keys=True, default=str) + "\n")

    def read(self) -> List[Dict[str, Any]]:
        if not self.path.exists():
            return []
        out: List[Dict[str, Any]] = []
        for ln in self.path.read_text(encoding="utf-8").splitlines():
            if ln.strip():
                out.append(json.loads(ln))
        return out


class EventBus:
    """Synchronous in-process publish/subscribe.

    Handlers run in subscription order on the publishing thread. A handler
    that raises is logged and skipped; the remaining handlers still run.
    """

    def __init__(self, *, history_size: int = DEFAULT_HISTORY, journal: Optional[EventJournal] = None):
        self._subs: Dict[str, Tuple[str, EventHandler]] = {}
        self._history: Deque[ConfigurationEvent] = deque(maxlen=history_size)
        self._lock = threading.RLock()
        self.journal = journal

    def subscribe(self, event_name: str, handler: EventHandler) -> str:
        if not callable(handler):
            raise TypeError("handler must be callable")
        sub_id = uuid.uuid4().hex
        with self._lock:
            self._subs[sub_id] = (event_name, handler)
        logger.debug("Subscribed %s to %s", sub_id, event_name)
        return sub_id

    def unsubscribe(self, subscription_id: str) -> bool:
        with self._lock:
            return self._subs.pop(subscription_id, None) is not None

    def subscriptions(self, event_name: Optional[str] = None) -> List[str]:
        with self._lock:
            return [sid for sid, (name, _) in self._subs.items() if event_name is None or name == event_name]

    def publish(self, event_name: str, data: Optional[Dict[str, Any]] = None) -> ConfigurationEvent:
        event = ConfigurationEvent(name=event_name, data=dict(data or {}))
        with self._lock:
            self._history.append(event)
            handlers = [h for name, h in self._subs.values() if name in (event_name, ALL_EVENTS)]

        if self.journal is not None:
            try:
                self.journal.log(event)
            except OSError:
                logger.exception("Failed to journal event %s to %s", event_name, self.journal.path)

        logger.debug("Publishing %s to %d handler(s)", event_name, len(handlers))
        for handler in handlers:
            try:
                handler(event)
            except Exception:
                logger.exception("Event handler %r failed for %s", handler, event_name)
        return event

    def history(self, event_name: Optional[str] = None, limit: Optional[int] = None) -> List[ConfigurationEvent]:
        with self._lock:
            items = [e for e in self._history if event_name is None or e.name == event_name]
        if limit is not None:
            items = items[-limit:] if limit > 0 else []
        return items

    def clear_history(self) -> None:
        with self._lock:
            self._history.clear()
