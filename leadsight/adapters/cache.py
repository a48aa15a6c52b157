# leadsight/adapters/cache.py
"""
Process-wide in-memory cache with per-entry TTL.

One instance is built at app startup and injected wherever it is needed.
Values are deep-copied on the way in and out, so callers can never mutate
what another request reads back.
"""
from __future__ import annotations

import copy
import json
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable

log = logging.getLogger(__name__)


@dataclass
class _Entry:
    value: Any
    expires_at: float


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    sets: int = 0
    set_failures: int = 0
    expired: int = 0

    def snapshot(self) -> dict[str, int]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "sets": self.sets,
            "set_failures": self.set_failures,
            "expired": self.expired,
        }


class CoordinateCache:
    def __init__(self, default_ttl_s: float = 3600, *, clock: Callable[[], float] = time.monotonic) -> None:
        self.default_ttl_s = float(default_ttl_s)
        self._clock = clock
        self._data: dict[str, _Entry] = {}
        self._lock = threading.RLock()
        self.stats = CacheStats()

    @staticmethod
    def generate_key(prefix: str, params: dict[str, Any] | None = None) -> str:
        """
        prefix:k1=<json>|k2=<json>... with keys sorted, so dict ordering
        never changes the key.
        """
        if not params:
            return prefix
        parts = [
            f"{k}={json.dumps(params[k], sort_keys=True, default=str)}"
            for k in sorted(params)
        ]
        return f"{prefix}:{'|'.join(parts)}"

    def _live(self, key: str, now: float) -> _Entry | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        if entry.expires_at <= now:
            del self._data[key]
            self.stats.expired += 1
            return None
        return entry

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._live(key, self._clock())
            if entry is None:
                self.stats.misses += 1
                log.debug("cache miss key=%s", key)
                return None
            self.stats.hits += 1
            value = entry.value
        log.debug("cache hit key=%s", key)
        return copy.deepcopy(value)

    def set(self, key: str, value: Any, ttl_s: float | None = None) -> bool:
        try:
            ttl = self.default_ttl_s if ttl_s is None else float(ttl_s)
            stored = copy.deepcopy(value)
        except (TypeError, ValueError, copy.Error, RecursionError) as e:
            with self._lock:
                self.stats.set_failures += 1
            log.error("cache set failed key=%s error=%s", key, e)
            return False
        with self._lock:
            self._data[key] = _Entry(value=stored, expires_at=self._clock() + ttl)
            self.stats.sets += 1
        log.debug("cache set key=%s ttl=%ss", key, ttl)
        return True

    def has(self, key: str) -> bool:
        with self._lock:
            return self._live(key, self._clock()) is not None

    def invalidate(self, key: str) -> int:
        with self._lock:
            removed = 1 if self._data.pop(key, None) is not None else 0
        log.debug("cache invalidate key=%s removed=%s", key, removed)
        return removed

    def clear(self) -> int:
        with self._lock:
            count = len(self._data)
            self._data.clear()
        log.info("cache cleared (%s keys removed)", count)
        return count

    def sweep(self) -> int:
        """Drop every expired entry; returns how many were removed."""
        with self._lock:
            now = self._clock()
            dead = [k for k, e in self._data.items() if e.expires_at <= now]
            for k in dead:
                del self._data[k]
            self.stats.expired += len(dead)
        if dead:
            log.debug("cache sweep removed=%s", len(dead))
        return len(dead)

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            keys = sorted(self._data)
        return {"key_count": len(keys), "keys": keys, "stats": self.stats.snapshot()}
