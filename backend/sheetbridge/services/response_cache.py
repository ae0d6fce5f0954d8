"""
Bounded in-memory response cache.

One reusable cache abstraction, instantiated per sub-cache (spreadsheet->JSON
payloads, generated spreadsheets, AI answers) with its own bounds:

- size: maximum entry count and/or maximum cumulative weight (bytes by default)
- time: expiry since write and/or since last access
- order: least-recently-accessed entries are evicted first

Evictions are reported to a listener (default: debug log with key and cause).
Listener failures are logged and never reach the caller, and listeners run
after the lock is released so a slow listener cannot stall other requests.
"""

from __future__ import annotations

import time
from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum
from threading import RLock
from typing import Any, Callable, Dict, List, Optional, Tuple

from sheetbridge.utils.app_logger import get_cache_logger

logger = get_cache_logger()


class RemovalCause(str, Enum):
    REPLACED = "replaced"
    EXPIRED = "expired"
    SIZE = "size"


@dataclass(frozen=True)
class CachePolicy:
    max_entries: Optional[int] = None
    max_weight: Optional[int] = None
    expire_after_write: Optional[float] = None
    expire_after_access: Optional[float] = None


@dataclass
class CacheEntry:
    key: str
    payload: bytes
    weight: int
    written_at: float
    accessed_at: float


EvictionListener = Callable[[str, RemovalCause], None]


def _log_eviction(name: str) -> EvictionListener:
    def _listener(key: str, cause: RemovalCause) -> None:
        logger.debug("[%s] evicted key=%s cause=%s", name, key, cause.value)

    return _listener


class ResponseCache:
    def __init__(
        self,
        name: str,
        policy: Optional[CachePolicy] = None,
        *,
        weigher: Callable[[bytes], int] = len,
        on_evict: Optional[EvictionListener] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.policy = policy or CachePolicy()
        self._weigher = weigher
        self._on_evict = on_evict or _log_eviction(name)
        self._clock = clock

        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._weight = 0
        self._lock = RLock()

        self.hits = 0
        self.misses = 0
        self.evictions = 0

    def get(self, key: str) -> Optional[bytes]:
        removed: List[Tuple[str, RemovalCause]] = []
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None
            now = self._clock()
            if self._is_expired(entry, now):
                self._remove(key)
                removed.append((key, RemovalCause.EXPIRED))
                self.misses += 1
                payload = None
            else:
                entry.accessed_at = now
                self._entries.move_to_end(key)
                self.hits += 1
                payload = entry.payload
        self._notify(removed)
        return payload

    def put(self, key: str, payload: bytes) -> None:
        """Store a payload; an existing entry under the same key is overwritten (last write wins)."""
        weight = int(self._weigher(payload))
        removed: List[Tuple[str, RemovalCause]] = []
        with self._lock:
            now = self._clock()
            if key in self._entries:
                self._remove(key)
                removed.append((key, RemovalCause.REPLACED))

            max_weight = self.policy.max_weight
            if max_weight is not None and weight > max_weight:
                # Heavier than the whole cache: never admitted.
                removed.append((key, RemovalCause.SIZE))
            else:
                self._entries[key] = CacheEntry(
                    key=key, payload=payload, weight=weight, written_at=now, accessed_at=now
                )
                self._weight += weight
                removed.extend(self._purge_expired(now))
                removed.extend(self._enforce_bounds())
        self._notify(removed)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            entry = self._entries.get(key)  # type: ignore[arg-type]
            return entry is not None and not self._is_expired(entry, self._clock())

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    @property
    def weight(self) -> int:
        with self._lock:
            return self._weight

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._weight = 0

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            total = self.hits + self.misses
            return {
                "name": self.name,
                "size": len(self._entries),
                "weight": self._weight,
                "max_entries": self.policy.max_entries,
                "max_weight": self.policy.max_weight,
                "hits": self.hits,
                "misses": self.misses,
                "hit_rate": self.hits / total if total else 0.0,
                "evictions": self.evictions,
            }

    def _is_expired(self, entry: CacheEntry, now: float) -> bool:
        ttl_write = self.policy.expire_after_write
        if ttl_write is not None and now - entry.written_at >= ttl_write:
            return True
        ttl_access = self.policy.expire_after_access
        return ttl_access is not None and now - entry.accessed_at >= ttl_access

    def _remove(self, key: str) -> None:
        entry = self._entries.pop(key)
        self._weight -= entry.weight

    def _purge_expired(self, now: float) -> List[Tuple[str, RemovalCause]]:
        """
        Drop expired entries from the least-recently-accessed end, stopping at the first live one.

        Access order is also expire-after-access order. An entry past its write
        expiry further back stays until it reaches the head or is looked up, and
        lookups never return it.
        """
        if self.policy.expire_after_write is None and self.policy.expire_after_access is None:
            return []
        removed: List[Tuple[str, RemovalCause]] = []
        while self._entries:
            oldest, entry = next(iter(self._entries.items()))
            if not self._is_expired(entry, now):
                break
            self._remove(oldest)
            self.evictions += 1
            removed.append((oldest, RemovalCause.EXPIRED))
        return removed

    def _enforce_bounds(self) -> List[Tuple[str, RemovalCause]]:
        removed: List[Tuple[str, RemovalCause]] = []
        max_entries = self.policy.max_entries
        max_weight = self.policy.max_weight
        while self._entries and (
            (max_entries is not None and len(self._entries) > max_entries)
            or (max_weight is not None and self._weight > max_weight)
        ):
            oldest = next(iter(self._entries))
            self._remove(oldest)
            self.evictions += 1
            removed.append((oldest, RemovalCause.SIZE))
        return removed

    def _notify(self, removed: List[Tuple[str, RemovalCause]]) -> None:
        for key, cause in removed:
            try:
                self._on_evict(key, cause)
            except Exception as e:
                logger.warning("[%s] eviction listener failed for key=%s: %s", self.name, key, e)
