from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from advanced_cache.domain.clock import wall_clock_ms

from .ports import CacheStorePort

logger = logging.getLogger(__name__)

T = TypeVar("T")

FocusListener = Callable[[bool], Awaitable[None]]


class QueryConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    ttl: int = Field(default=5 * 60 * 1000, ge=0)
    enabled: bool = True
    stale_time: int = Field(default=0, ge=0)
    cache_time: int = Field(default=10 * 60 * 1000, ge=0)
    refetch_on_window_focus: bool = False


class FocusManager:
    """Fan-out point for "application became visible/focused" events."""

    def __init__(self) -> None:
        self._listeners: list[FocusListener] = []

    def subscribe(self, listener: FocusListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def notify(self, visible: bool = True) -> None:
        # Listeners run side by side so one hung fetch cannot hold up the rest.
        await asyncio.gather(*(listener(visible) for listener in list(self._listeners)))


class CachedQuery(Generic[T]):
    """
    Memoizes an async fetch function in a shared cache.

    At most one fetch is in flight per query; triggers that arrive while a
    fetch is running are dropped. A failed fetch records `error` and keeps
    whatever data is still available, falling back to the cached value.
    """

    def __init__(
        self,
        cache: CacheStorePort,
        query_key: str,
        query_fn: Callable[[], Awaitable[T]],
        config: Optional[QueryConfig] = None,
        *,
        focus: Optional[FocusManager] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.cache = cache
        self.query_key = query_key
        self.query_fn = query_fn
        self.config = config or QueryConfig()
        self._enabled = self.config.enabled
        self._focus = focus
        self._clock = clock or wall_clock_ms

        self.data: Optional[T] = cache.get(query_key)
        self.is_loading = False
        self.error: Optional[BaseException] = None
        self.last_fetch: float = 0

        self._mounted = False
        self._unsubscribe_focus: Optional[Callable[[], None]] = None

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def is_stale(self) -> bool:
        return self._clock() - self.last_fetch > self.config.stale_time

    @property
    def status(self) -> str:
        if self.is_loading:
            return "loading"
        if self.error is not None:
            return "error"
        if self.data is not None:
            return "success"
        return "idle"

    async def fetch(self, force: bool = False) -> None:
        if not self._enabled:
            return
        if self.is_loading:
            return
        if not force and not self.is_stale and self.data is not None:
            return

        key = self.query_key
        self.is_loading = True
        self.error = None
        try:
            result = await self.query_fn()
        except Exception as exc:
            logger.warning("Query %r failed: %s", key, exc, extra={"query_key": key})
            if key == self.query_key:
                self.error = exc
                stale_data = self.cache.get(key)
                if stale_data is not None:
                    self.data = stale_data
        else:
            # The cache is shared, so a result for a key we have since
            # switched away from is still worth keeping there.
            self.cache.set(key, result, self.config.ttl)
            if key == self.query_key:
                self.data = result
                self.last_fetch = self._clock()
        finally:
            self.is_loading = False

        # A key switch during the fetch had its auto-fetch dropped by the
        # in-flight guard; run it now that the guard is released.
        if key != self.query_key and self._mounted:
            await self._auto_fetch()

    async def refetch(self) -> None:
        await self.fetch(force=True)

    def invalidate(self) -> None:
        self.cache.remove(self.query_key)
        self.last_fetch = 0

    async def mount(self) -> None:
        self._mounted = True
        if (
            self.config.refetch_on_window_focus
            and self._focus is not None
            and self._unsubscribe_focus is None
        ):
            self._unsubscribe_focus = self._focus.subscribe(self.handle_focus)
        await self._auto_fetch()

    def unmount(self) -> None:
        self._mounted = False
        if self._unsubscribe_focus is not None:
            self._unsubscribe_focus()
            self._unsubscribe_focus = None

    async def set_query_key(self, query_key: str) -> None:
        if query_key == self.query_key:
            return
        self.query_key = query_key
        self.data = self.cache.get(query_key)
        self.error = None
        self.last_fetch = 0
        if self._mounted:
            await self._auto_fetch()

    async def set_enabled(self, enabled: bool) -> None:
        self._enabled = enabled
        if enabled and self._mounted:
            await self._auto_fetch()

    async def handle_focus(self, visible: bool = True) -> None:
        if visible and self.is_stale:
            await self.fetch()

    async def _auto_fetch(self) -> None:
        if self._enabled and (self.data is None or self.is_stale):
            await self.fetch()

