from __future__ import annotations

import re
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, TypeVar

from .datetime_utils import now_local

T = TypeVar("T")


@dataclass
class _Entry:
    value: Any
    stored_at: float
    ttl_seconds: float


class TTLCache:
    """Small in-process cache with per-key expiry.

    Owned by the application container; nothing global. ``clock`` returns
    seconds and can be swapped in tests.
    """

    def __init__(self, *, default_ttl_seconds: float = 300.0, clock: Optional[Callable[[], float]] = None):
        self._default_ttl = float(default_ttl_seconds)
        self._clock = clock or (lambda: now_local().timestamp())
        self._items: Dict[str, _Entry] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._items.get(key)
            if entry is None:
                self._misses += 1
                return None
            if self._clock() - entry.stored_at > entry.ttl_seconds:
                del self._items[key]
                self._misses += 1
                return None
            self._hits += 1
            return entry.value

    def set(self, key: str, value: Any, *, ttl_seconds: Optional[float] = None) -> None:
        ttl = self._default_ttl if ttl_seconds is None else float(ttl_seconds)
        with self._lock:
            self._items[key] = _Entry(value=value, stored_at=self._clock(), ttl_seconds=ttl)

    def get_or_load(self, key: str, loader: Callable[[], T], *, ttl_seconds: Optional[float] = None) -> T:
        cached = self.get(key)
        if cached is not None:
            return cached
        value = loader()
        self.set(key, value, ttl_seconds=ttl_seconds)
        return value

    def invalidate_pattern(self, pattern: str) -> None:
        regex = re.compile(pattern)
        with self._lock:
            for key in [k for k in self._items if regex.search(k)]:
                del self._items[key]

    def clear(self) -> None:
        with self._lock:
            self._items.clear()

    def stats(self) -> dict:
        with self._lock:
            lookups = self._hits + self._misses
            return {
                "size": len(self._items),
                "hits": self._hits,
                "misses": self._misses,
                "hit_ratio": (self._hits / lookups) if lookups else 0.0,
            }
