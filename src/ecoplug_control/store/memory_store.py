"""In-process document store with Realtime Database semantics.

Used by the tests and by the demo run. Reads return deep copies so callers can
never mutate stored state by accident.
"""

import copy
import itertools
import threading
import time
from typing import Any, Dict, List, Optional, Tuple

from ecoplug_control.store.base import (
    ChangeCallback,
    DocumentStore,
    Unsubscribe,
    join_path,
    split_path,
)
from ecoplug_control.util.logging import LoggingUtil

logger = LoggingUtil.get_logger(__name__)


class MemoryStore(DocumentStore):
    """Thread-safe nested-dictionary store."""

    def __init__(self, data: Optional[Dict[str, Any]] = None) -> None:
        self._data: Dict[str, Any] = copy.deepcopy(data) if data else {}
        self._lock = threading.RLock()
        self._subscribers: Dict[int, Tuple[List[str], ChangeCallback]] = {}
        self._ids = itertools.count()
        self.patch_count = 0

    def fetch(self, path: str) -> Optional[Any]:
        with self._lock:
            node: Any = self._data
            for segment in split_path(path):
                if not isinstance(node, dict) or segment not in node:
                    return None
                node = node[segment]
            return copy.deepcopy(node)

    def patch(self, path: str, fields: Dict[str, Any]) -> None:
        with self._lock:
            for name, value in fields.items():
                self._set(split_path(join_path(path, name)), copy.deepcopy(value))
            self.patch_count += 1
        self._notify(path, fields)

    def push(self, path: str, value: Any) -> str:
        # Time ordered keys, like Realtime Database push IDs
        key = f"-{time.time_ns():020d}{next(self._ids):04d}"
        with self._lock:
            self._set(split_path(join_path(path, key)), copy.deepcopy(value))
        self._notify(join_path(path, key), value)
        return key

    def subscribe(self, path: str, on_change: ChangeCallback) -> Unsubscribe:
        subscription_id = next(self._ids)
        with self._lock:
            self._subscribers[subscription_id] = (split_path(path), on_change)

        def unsubscribe() -> None:
            with self._lock:
                self._subscribers.pop(subscription_id, None)

        return unsubscribe

    def _set(self, segments: List[str], value: Any) -> None:
        if not segments:
            self._data = value if isinstance(value, dict) else {}
            return

        node = self._data
        for segment in segments[:-1]:
            child = node.get(segment)
            if not isinstance(child, dict):
                if value is None:
                    return
                child = {}
                node[segment] = child
            node = child

        if value is None:
            node.pop(segments[-1], None)
        else:
            node[segments[-1]] = value

    def _notify(self, path: str, data: Any) -> None:
        changed = split_path(path)
        with self._lock:
            subscribers = list(self._subscribers.values())
        for watched, callback in subscribers:
            length = min(len(watched), len(changed))
            if watched[:length] != changed[:length]:
                continue
            try:
                callback(join_path(path), copy.deepcopy(data))
            except Exception as ex:
                logger.error("Subscriber for %s failed: %s", "/".join(watched), ex, exc_info=True)
