from __future__ import annotations

import json
import logging
from collections import OrderedDict
from threading import RLock
from typing import Any, Callable, Dict, Optional

from advanced_cache.application.ports import KeyValueStorage
from advanced_cache.domain.clock import wall_clock_ms
from advanced_cache.domain.entry import CacheEntry

from .config import CacheConfig

logger = logging.getLogger(__name__)

DEFAULT_MAX_SIZE = 100
DEFAULT_TTL_MS = 5 * 60 * 1000
DEFAULT_PERSISTENCE_KEY = "app-cache"


class AdvancedCache:
    """
    In-memory key/value cache with per-entry TTL and LRU eviction.

    Expired entries are purged with a full scan before every read, write and
    stats call. When persistence is enabled the whole entry map is written to
    `storage` under `persistence_key` after every mutation, and read back
    (dropping expired entries) when the cache is constructed. Persistence
    failures are logged and never raised; the in-memory map stays
    authoritative.

    LRU eviction only runs from `set`. Reads refresh recency but never evict.
    """

    def __init__(
        self,
        max_size: int = DEFAULT_MAX_SIZE,
        default_ttl: float = DEFAULT_TTL_MS,
        enable_lru: bool = True,
        enable_persistence: bool = False,
        persistence_key: str = DEFAULT_PERSISTENCE_KEY,
        storage: Optional[KeyValueStorage] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        if max_size < 1:
            raise ValueError(f"max_size must be >= 1, got {max_size}")
        if default_ttl < 0:
            raise ValueError(f"default_ttl must be >= 0, got {default_ttl}")

        self.max_size = max_size
        self.default_ttl = default_ttl
        self.enable_lru = enable_lru
        self.enable_persistence = enable_persistence
        self.persistence_key = persistence_key

        self.entries: Dict[str, CacheEntry] = {}
        self.access_order: OrderedDict[str, None] = OrderedDict()
        self.lock = RLock()
        self._storage = storage
        self._clock = clock or wall_clock_ms

        self.persistence_failures = 0
        self.last_persistence_error: Optional[str] = None
        self._persistence_ok = True

        if self.enable_persistence:
            self._load_persisted()

    @classmethod
    def from_config(
        cls,
        config: CacheConfig,
        *,
        storage: Optional[KeyValueStorage] = None,
        clock: Optional[Callable[[], float]] = None,
    ) -> "AdvancedCache":
        return cls(
            max_size=config.max_size,
            default_ttl=config.default_ttl,
            enable_lru=config.enable_lru,
            enable_persistence=config.enable_persistence,
            persistence_key=config.persistence_key,
            storage=storage,
            clock=clock,
        )

    def set(self, key: str, data: Any, ttl: Optional[float] = None) -> None:
        with self.lock:
            self._evict_expired()

            self.entries[key] = CacheEntry(
                data=data,
                timestamp=self._clock(),
                ttl=self.default_ttl if ttl is None else ttl,
                hits=0,
            )
            self._touch(key)
            self._evict_lru()
            self._persist()

    def get(self, key: str) -> Optional[Any]:
        with self.lock:
            self._evict_expired()

            entry = self.entries.get(key)
            if entry is None:
                return None

            if entry.is_expired(self._clock()):
                self._remove_entry(key)
                self._persist()
                return None

            entry.hits += 1
            self._touch(key)
            return entry.data

    def has(self, key: str) -> bool:
        with self.lock:
            self._evict_expired()
            return key in self.entries

    def remove(self, key: str) -> bool:
        with self.lock:
            if key not in self.entries:
                return False
            self._remove_entry(key)
            self._persist()
            return True

    def clear(self) -> None:
        with self.lock:
            self.entries.clear()
            self.access_order.clear()
            self._persist()

    def keys(self) -> list[str]:
        with self.lock:
            self._evict_expired()
            return list(self.entries)

    def get_stats(self) -> Dict[str, Any]:
        """
        Aggregate counters over the live entries.

        `hit_rate` is total_hits / (total_hits + size). Misses are not
        tracked, so this is a popularity ratio rather than a true hit ratio.
        """
        with self.lock:
            self._evict_expired()

            size = len(self.entries)
            total_hits = sum(entry.hits for entry in self.entries.values())
            avg_hits = total_hits / size if size > 0 else 0
            return {
                "size": size,
                "max_size": self.max_size,
                "total_hits": total_hits,
                "avg_hits": round(avg_hits, 2),
                "hit_rate": total_hits / (total_hits + size) if total_hits > 0 else 0,
            }

    def persistence_status(self) -> Dict[str, Any]:
        """`healthy` reflects the most recent load or write of the snapshot."""
        with self.lock:
            return {
                "enabled": self.enable_persistence and self._storage is not None,
                "key": self.persistence_key,
                "healthy": self._persistence_ok,
                "failures": self.persistence_failures,
                "last_error": self.last_persistence_error,
            }

    def _touch(self, key: str) -> None:
        if not self.enable_lru:
            return
        self.access_order[key] = None
        self.access_order.move_to_end(key)

    def _remove_entry(self, key: str) -> None:
        self.entries.pop(key, None)
        self.access_order.pop(key, None)

    def _evict_expired(self) -> None:
        now = self._clock()
        expired_keys = [k for k, v in self.entries.items() if v.is_expired(now)]
        if not expired_keys:
            return

        for k in expired_keys:
            self._remove_entry(k)
        logger.debug("Purged %d expired entries", len(expired_keys))
        self._persist()

    def _evict_lru(self) -> None:
        """Evict least recently used keys until size is back at max_size."""
        if not self.enable_lru or len(self.entries) <= self.max_size:
            return

        excess = len(self.entries) - self.max_size
        victims = list(self.access_order)[:excess]
        for k in victims:
            self._remove_entry(k)
        logger.debug("Evicted %d least recently used entries", len(victims))
        self._persist()

    def _record_persistence_failure(self, exc: Exception) -> None:
        self._persistence_ok = False
        self.persistence_failures += 1
        self.last_persistence_error = f"{type(exc).__name__}: {exc}"

    def _persist(self) -> None:
        if not self.enable_persistence or self._storage is None:
            return
        try:
            snapshot = {k: v.to_dict() for k, v in self.entries.items()}
            self._storage.set_item(self.persistence_key, json.dumps(snapshot))
        except (TypeError, ValueError, OSError) as exc:
            self._record_persistence_failure(exc)
            logger.warning(
                "Failed to persist cache %r: %s",
                self.persistence_key,
                exc,
                extra={"persistence_key": self.persistence_key},
            )
        else:
            self._persistence_ok = True

    def _load_persisted(self) -> None:
        if self._storage is None:
            return
        try:
            saved = self._storage.get_item(self.persistence_key)
            if not saved:
                return
            parsed = json.loads(saved)
        except (TypeError, ValueError, OSError) as exc:
            self._record_persistence_failure(exc)
            logger.warning(
                "Failed to load cache %r from persistence: %s",
                self.persistence_key,
                exc,
                extra={"persistence_key": self.persistence_key},
            )
            return

        if not isinstance(parsed, dict):
            logger.warning("Ignoring persisted cache %r: not a JSON object", self.persistence_key)
            return

        now = self._clock()
        for key, raw in parsed.items():
            entry = CacheEntry.from_dict(raw)
            if entry is None:
                continue
            if now - entry.timestamp < entry.ttl:
                self.entries[key] = entry
                self._touch(key)
