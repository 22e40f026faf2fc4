"""
Caches

Bounded in-memory caches shared by concurrent requests:
- LRUCache: embedding cache keyed by a hash of the exact input text
- TTLCache: query-response cache whose entries expire after a fixed TTL
"""

import hashlib
import json
import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Hashable, Optional, Tuple


def stable_hash(value: Any) -> str:
    """SHA-256 of a string, or of the canonical JSON form of any other value."""
    if isinstance(value, str):
        payload = value
    else:
        payload = json.dumps(value, sort_keys=True, default=str, separators=(",", ":"))
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class LRUCache:
    """Least-recently-used cache with a fixed number of entries."""

    def __init__(self, max_size: int = 10000):
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        self._max_size = max_size
        self._data: "OrderedDict[Hashable, Any]" = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, key: Hashable) -> Optional[Any]:
        with self._lock:
            if key not in self._data:
                self.misses += 1
                return None
            self._data.move_to_end(key)
            self.hits += 1
            return self._data[key]

    def set(self, key: Hashable, value: Any) -> None:
        with self._lock:
            self._data[key] = value
            self._data.move_to_end(key)
            while len(self._data) > self._max_size:
                self._data.popitem(last=False)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._data

    def __len__(self) -> int:
        return len(self._data)


class TTLCache:
    """
    Cache whose entries expire ``ttl`` seconds after they were written.

    Also bounded by ``max_size`` (oldest write evicted first). Expired
    entries are dropped lazily on read and on ``purge_expired``.
    """

    def __init__(
        self,
        ttl: float = 300.0,
        max_size: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ):
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        self._ttl = ttl
        self._max_size = max_size
        self._clock = clock
        self._data: "OrderedDict[Hashable, Tuple[float, Any]]" = OrderedDict()
        self._lock = threading.Lock()

    @property
    def ttl(self) -> float:
        return self._ttl

    def get(self, key: Hashable) -> Optional[Any]:
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if self._clock() >= expires_at:
                del self._data[key]
                return None
            return value

    def set(self, key: Hashable, value: Any) -> None:
        with self._lock:
            self._data.pop(key, None)
            self._data[key] = (self._clock() + self._ttl, value)
            while len(self._data) > self._max_size:
                self._data.popitem(last=False)

    def purge_expired(self) -> int:
        """Drop every expired entry; returns how many were removed."""
        now = self._clock()
        with self._lock:
            stale = [k for k, (expires_at, _) in self._data.items() if now >= expires_at]
            for k in stale:
                del self._data[k]
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def __len__(self) -> int:
        return len(self._data)
