"""Thread-safe TTL result cache with per-entry lifetimes and string namespaces."""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, TypeVar

from cachetools import TLRUCache

logger = logging.getLogger(__name__)

T = TypeVar("T")

_MISSING = object()


@dataclass(frozen=True)
class _Entry:
    value: Any
    ttl_seconds: float


def _time_to_use(_key, entry: _Entry, now: float) -> float:
    return now + entry.ttl_seconds


class ResultCache:
    """
    Memoises computed values for a TTL window.

    Computation runs outside the lock, so two callers racing on the same
    missing key may both compute; the last result stored wins and every
    later call gets that stored object back unchanged until it expires.
    Failed computations are never stored.
    """

    def __init__(self, maxsize: int = 1024, timer: Callable[[], float] = time.monotonic):
        self._lock = threading.Lock()
        self._data = TLRUCache(maxsize=maxsize, ttu=_time_to_use, timer=timer)

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            entry = self._data.get(key, _MISSING)
        if entry is _MISSING:
            return default
        return entry.value

    def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        with self._lock:
            self._data[key] = _Entry(value=value, ttl_seconds=float(ttl_seconds))

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._data.pop(key, _MISSING) is not _MISSING

    def delete_prefix(self, prefix: str) -> int:
        with self._lock:
            self._data.expire()
            keys = [k for k in self._data.keys() if k.startswith(prefix)]
            for k in keys:
                del self._data[k]
        return len(keys)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._data

    def __len__(self) -> int:
        with self._lock:
            self._data.expire()
            return len(self._data)

    def get_or_compute(self, key: str, compute: Callable[[], T], ttl_seconds: float,
                       force_refresh: bool = False) -> T:
        if not force_refresh:
            with self._lock:
                entry = self._data.get(key, _MISSING)
            if entry is not _MISSING:
                logger.debug("cache hit %s", key)
                return entry.value

        logger.debug("cache miss %s", key)
        value = compute()
        self.set(key, value, ttl_seconds)
        return value

    def namespace(self, name: str) -> "NamespacedCache":
        return NamespacedCache(self, name)


class NamespacedCache:
    """View of a ResultCache whose keys are prefixed with "<namespace>:"."""

    def __init__(self, cache: ResultCache, namespace: str):
        self.cache = cache
        self.namespace = namespace

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    def get(self, key: str, default: Any = None) -> Any:
        return self.cache.get(self._key(key), default)

    def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        self.cache.set(self._key(key), value, ttl_seconds)

    def delete(self, key: str) -> bool:
        return self.cache.delete(self._key(key))

    def flush(self) -> int:
        return self.cache.delete_prefix(f"{self.namespace}:")

    def __contains__(self, key: str) -> bool:
        return self._key(key) in self.cache

    def get_or_compute(self, key: str, compute: Callable[[], T], ttl_seconds: float,
                       force_refresh: bool = False) -> T:
        return self.cache.get_or_compute(self._key(key), compute, ttl_seconds, force_refresh)

