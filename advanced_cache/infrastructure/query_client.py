from __future__ import annotations

from typing import Awaitable, Callable, Optional, TypeVar

from advanced_cache.application.ports import KeyValueStorage
from advanced_cache.application.query import CachedQuery, FocusManager, QueryConfig

from .memory_store import AdvancedCache

T = TypeVar("T")

QUERY_PERSISTENCE_KEY = "query-cache"


class QueryClient:
    """Owns the cache and focus source shared by a family of queries."""

    def __init__(
        self,
        cache: AdvancedCache,
        *,
        focus: Optional[FocusManager] = None,
        default_config: Optional[QueryConfig] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.cache = cache
        self.focus = focus or FocusManager()
        self.default_config = default_config or QueryConfig()
        self._clock = clock

    @classmethod
    def create(
        cls,
        storage: Optional[KeyValueStorage] = None,
        *,
        default_config: Optional[QueryConfig] = None,
        clock: Optional[Callable[[], float]] = None,
    ) -> "QueryClient":
        config = default_config or QueryConfig()
        cache = AdvancedCache(
            default_ttl=config.cache_time,
            enable_persistence=True,
            persistence_key=QUERY_PERSISTENCE_KEY,
            storage=storage,
            clock=clock,
        )
        return cls(cache, default_config=config, clock=clock)

    def query(
        self,
        query_key: str,
        query_fn: Callable[[], Awaitable[T]],
        config: Optional[QueryConfig] = None,
    ) -> CachedQuery[T]:
        return CachedQuery(
            self.cache,
            query_key,
            query_fn,
            config or self.default_config,
            focus=self.focus,
            clock=self._clock,
        )

    async def window_focused(self, visible: bool = True) -> None:
        await self.focus.notify(visible)
