"""Thread-safe cache map used by the caching backends.

Each backend instance owns its own maps. A map can be bounded, in which
case the oldest inserted entry is evicted first (FIFO). Reading an entry
does not refresh its position: this is not an LRU cache.
"""

import threading
from typing import Callable, Generic, Iterator, Optional, TypeVar

V = TypeVar("V")


class CacheMap(Generic[V]):
    """Insertion-ordered map with atomic per-key population.

    Attributes:
        max_entries: Maximum number of entries, or None for unbounded
    """

    def __init__(self, max_entries: Optional[int] = None):
        if max_entries is not None and max_entries < 1:
            raise ValueError(f"max_entries must be positive, got {max_entries}")
        self.max_entries = max_entries
        self._data: dict[str, V] = {}
        self._lock = threading.Lock()
        self._key_locks: dict[str, threading.Lock] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._data

    def __iter__(self) -> Iterator[str]:
        return iter(self.keys())

    def keys(self) -> list[str]:
        """Snapshot of the keys in insertion order."""
        with self._lock:
            return list(self._data)

    def get(self, key: str, default: Optional[V] = None) -> Optional[V]:
        with self._lock:
            return self._data.get(key, default)

    def put(self, key: str, value: V) -> None:
        with self._lock:
            self._insert(key, value)

    def put_if_absent(self, key: str, value: V) -> V:
        """Insert value unless key is present; return the stored value."""
        with self._lock:
            if key in self._data:
                return self._data[key]
            self._insert(key, value)
            return value

    def pop(self, key: str, default: Optional[V] = None) -> Optional[V]:
        with self._lock:
            return self._data.pop(key, default)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def compute_if_absent(self, key: str, loader: Callable[[str], V]) -> tuple[V, bool]:
        """Return the value for key, calling loader at most once per key.

        Concurrent callers for the same missing key wait for the first
        caller's load. If the loader raises, nothing is stored and the
        exception propagates; the next caller loads again.

        Args:
            key: Cache key
            loader: Function computing the value from the key

        Returns:
            Tuple of (value, was_cached)
        """
        with self._lock:
            if key in self._data:
                return self._data[key], True
            key_lock = self._key_locks.setdefault(key, threading.Lock())

        with key_lock:
            with self._lock:
                if key in self._data:
                    return self._data[key], True
            try:
                value = loader(key)
                return self.put_if_absent(key, value), False
            finally:
                with self._lock:
                    self._key_locks.pop(key, None)

    def _insert(self, key: str, value: V) -> None:
        # Caller holds self._lock
        if self.max_entries is not None and key not in self._data:
            while len(self._data) >= self.max_entries:
                self._evict_oldest()
        self._data[key] = value

    def _evict_oldest(self) -> None:
        oldest = next(iter(self._data))
        del self._data[oldest]
