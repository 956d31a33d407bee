"""Thread-safe scratch storage shared by the tasks of a run."""
import threading
from typing import Any, Dict, Tuple


class Cache:
    """Mapping of string keys to arbitrary values with synchronized access."""

    def __init__(self):
        self._lock = threading.RLock()
        self._store: Dict[str, Any] = {}

    def get(self, key: str) -> Tuple[Any, bool]:
        """Return ``(value, found)`` for `key`."""
        with self._lock:
            if key in self._store:
                return self._store[key], True
            return None, False

    def get_or(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._store.get(key, default)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._store[key] = value

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return dict(self._store)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._store

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)
