from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from advanced_cache.domain.validation import validate_key, validate_ttl

from .ports import CacheStorePort


@dataclass(frozen=True)
class CacheApplicationService:
    store: CacheStorePort

    def get(self, key: str) -> Optional[Any]:
        validate_key(key)
        return self.store.get(key)

    def set(self, key: str, value: Any, ttl_ms: Optional[int] = None) -> None:
        validate_key(key)
        self.store.set(key, value, ttl=validate_ttl(ttl_ms))

    def delete(self, key: str) -> bool:
        validate_key(key)
        return self.store.remove(key)

    def clear(self) -> None:
        self.store.clear()

    def keys(self) -> list[str]:
        return self.store.keys()

    def stats(self) -> dict[str, Any]:
        return self.store.get_stats()

    def persistence(self) -> dict[str, Any]:
        return self.store.persistence_status()
