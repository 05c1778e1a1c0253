# FILE: riskwiz/cache.py
from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Generic, Optional, TypeVar

V = TypeVar("V")

DEFAULT_TTL_S = 3600.0


@dataclass(frozen=True)
class CacheEntry(Generic[V]):
    value: V
    expires_at: float


class ResultCache(Generic[V]):
    """
    Fingerprint-keyed store of validated results with a time-to-live.

    Expiry is lazy: get() drops an entry once it observes now > expires_at.
    sweep() is available for callers that want to reclaim memory, but
    nothing depends on it. There is no size bound; growth over the process
    lifetime is limited only by the number of distinct fingerprints seen
    within a TTL window.

    `clock` returns seconds and must be monotonic; it is injectable so tests
    can move time forward.
    """

    def __init__(
        self,
        *,
        default_ttl_s: float = DEFAULT_TTL_S,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if default_ttl_s <= 0:
            raise ValueError("default_ttl_s must be positive")
        self.default_ttl_s = float(default_ttl_s)
        self._clock = clock
        self._entries: Dict[str, CacheEntry[V]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[V]:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if now > entry.expires_at:
                del self._entries[key]
                return None
            return entry.value

    def set(self, key: str, value: V, ttl_s: Optional[float] = None) -> None:
        ttl = self.default_ttl_s if ttl_s is None else float(ttl_s)
        if ttl <= 0:
            raise ValueError("ttl_s must be positive")
        entry = CacheEntry(value=value, expires_at=self._clock() + ttl)
        with self._lock:
            self._entries[key] = entry

    def sweep(self) -> int:
        """Remove every expired entry; returns how many were dropped."""
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if now > e.expires_at]
            for k in expired:
                del self._entries[k]
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __contains__(self, key: object) -> bool:
        # Raw presence, expired or not; does not trigger lazy expiry.
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
