from __future__ import annotations

from typing import Any, Optional, Protocol


class CacheStorePort(Protocol):
    max_size: int
    default_ttl: float

    def get(self, key: str) -> Optional[Any]: ...

    def set(self, key: str, data: Any, ttl: Optional[float] = None) -> None: ...

    def has(self, key: str) -> bool: ...

    def remove(self, key: str) -> bool: ...

    def clear(self) -> None: ...

    def keys(self) -> list[str]: ...

    def get_stats(self) -> dict[str, Any]: ...

    def persistence_status(self) -> dict[str, Any]: ...


class KeyValueStorage(Protocol):
    """String-to-string durable store the cache snapshots itself into."""

    def get_item(self, key: str) -> Optional[str]: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...
