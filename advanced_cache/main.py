from __future__ import annotations

import asyncio
import logging
import os
import signal

from aiohttp import web

from advanced_cache.application.service import CacheApplicationService
from advanced_cache.infrastructure.config import Settings, load_settings
from advanced_cache.infrastructure.logging import configure_logging
from advanced_cache.infrastructure.memory_store import AdvancedCache
from advanced_cache.infrastructure.storage import FileStorage
from advanced_cache.infrastructure.tls import server_ssl_context
from advanced_cache.transport.active_requests import ActiveRequests
from advanced_cache.transport.http.health_app import create_app

logger = logging.getLogger(__name__)


def build_cache(settings: Settings) -> AdvancedCache:
    storage = FileStorage(settings.storage_dir) if settings.enable_persistence else None
    return AdvancedCache.from_config(settings.cache_config(), storage=storage)


async def serve(settings: Settings | None = None) -> None:
    settings = settings or load_settings()

    cache = build_cache(settings)
    cache_app = CacheApplicationService(cache)
    active_requests = ActiveRequests()
    app = create_app(cache_app, active_requests)

    ssl_context = server_ssl_context(settings)
    transport = "TLS" if ssl_context is not None else "plain HTTP"

    runner = web.AppRunner(app, access_log=logger if settings.log_level == "DEBUG" else None)
    await runner.setup()
    site = web.TCPSite(runner, settings.host, settings.port, ssl_context=ssl_context)
    await site.start()
    logger.info(
        "Cache service listening on %s:%s (%s, max_size=%s, persistence=%s)",
        settings.host,
        settings.port,
        transport,
        settings.max_size,
        "on" if settings.enable_persistence else "off",
    )

    stop_event = asyncio.Event()

    def _begin_shutdown() -> None:
        logger.info("Received shutdown signal, stopping cache service...")
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, _begin_shutdown)

    try:
        await stop_event.wait()
    finally:
        await runner.cleanup()


def main() -> None:
    configure_logging(
        os.getenv("CACHE_LOG_LEVEL", "INFO").upper(),
        os.getenv("CACHE_LOG_FORMAT", "text"),
    )
    try:
        settings = load_settings()
        asyncio.run(serve(settings))
    except Exception:
        logger.exception("Failed to start cache service")
        raise


if __name__ == "__main__":
    main()
