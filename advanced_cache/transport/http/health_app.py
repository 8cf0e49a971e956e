from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

from aiohttp import web

from advanced_cache.application.service import CacheApplicationService
from advanced_cache.transport.active_requests import ActiveRequests

from .cache_api import add_cache_routes, error_response, json_response
from .middleware import active_requests_middleware, request_id_middleware

logger = logging.getLogger(__name__)

SERVICE_NAME = "advanced-cache"

# (metric name, help text, stats field)
CACHE_GAUGES = (
    ("advanced_cache_entries", "Current number of live entries", "size"),
    ("advanced_cache_max_entries", "Configured entry ceiling", "max_size"),
    ("advanced_cache_entry_hits", "Hits summed over live entries", "total_hits"),
    ("advanced_cache_hit_rate", "total_hits / (total_hits + entries)", "hit_rate"),
)


def _gauge(name: str, help_text: str, value: Any) -> list[str]:
    return [f"# HELP {name} {help_text}", f"# TYPE {name} gauge", f"{name} {value}"]


class HealthCheckHandler:
    """
    Probe and metrics routes for the cache service.

    `/live` only says the process answers. `/ready` additionally fails while
    the persisted snapshot cannot be written, since a restart would then lose
    every entry written since the last good snapshot.
    """

    def __init__(self, app: CacheApplicationService, active_requests: ActiveRequests):
        self._app = app
        self._active_requests = active_requests
        self._start_time = time.monotonic()

    def _uptime(self) -> float:
        return round(time.monotonic() - self._start_time, 2)

    async def health_check(self, request: web.Request) -> web.Response:
        try:
            stats = await asyncio.to_thread(self._app.stats)
            persistence = await asyncio.to_thread(self._app.persistence)
        except Exception as exc:
            logger.exception("Health check error")
            return error_response(503, str(exc))

        return json_response(
            {
                "status": "healthy",
                "uptime_seconds": self._uptime(),
                "cache_size": stats.get("size", 0),
                "cache_max_size": stats.get("max_size", 0),
                "cache_total_hits": stats.get("total_hits", 0),
                "persistence": persistence,
                "active_requests": self._active_requests.value,
            }
        )

    async def readiness_check(self, request: web.Request) -> web.Response:
        try:
            persistence = await asyncio.to_thread(self._app.persistence)
        except Exception as exc:
            logger.exception("Readiness check error")
            return error_response(503, str(exc))

        if persistence["enabled"] and not persistence["healthy"]:
            logger.warning("Not ready: persistence failing (%s)", persistence["last_error"])
            return json_response({"status": "not_ready", "persistence": persistence}, status=503)
        return json_response({"status": "ready", "persistence": persistence})

    async def liveness_check(self, request: web.Request) -> web.Response:
        return json_response({"status": "alive", "uptime_seconds": self._uptime()})

    async def metrics(self, request: web.Request) -> web.Response:
        try:
            stats = await asyncio.to_thread(self._app.stats)
            persistence = await asyncio.to_thread(self._app.persistence)
        except Exception:
            logger.exception("Metrics error")
            return web.Response(text="", status=503, content_type="text/plain")

        lines: list[str] = []
        for name, help_text, field in CACHE_GAUGES:
            lines += _gauge(name, help_text, stats.get(field, 0))
        lines += _gauge(
            "advanced_cache_persistence_failures",
            "Snapshot loads or writes that failed",
            persistence["failures"],
        )
        lines += _gauge(
            "advanced_cache_active_requests",
            "Current in-flight HTTP requests",
            self._active_requests.value,
        )
        lines += _gauge("advanced_cache_uptime_seconds", "Process uptime in seconds", self._uptime())
        lines.append("")
        return web.Response(text="\n".join(lines), content_type="text/plain", charset="utf-8")

    async def stats(self, request: web.Request) -> web.Response:
        try:
            stats = await asyncio.to_thread(self._app.stats)
        except Exception as exc:
            logger.exception("Stats error")
            return error_response(503, str(exc))

        return json_response(
            {
                **stats,
                "uptime_seconds": self._uptime(),
                "active_requests": self._active_requests.value,
                "peak_active_requests": self._active_requests.peak,
            }
        )


def create_app(
    cache_app: CacheApplicationService,
    active_requests: ActiveRequests | None = None,
) -> web.Application:
    active_requests = active_requests or ActiveRequests()
    handler = HealthCheckHandler(cache_app, active_requests)

    app = web.Application(
        middlewares=[request_id_middleware, active_requests_middleware(active_requests)]
    )
    app.router.add_get("/health", handler.health_check)
    app.router.add_get("/ready", handler.readiness_check)
    app.router.add_get("/live", handler.liveness_check)
    app.router.add_get("/metrics", handler.metrics)
    app.router.add_get("/stats", handler.stats)
    add_cache_routes(app, cache_app)

    endpoints = sorted(
        {route.resource.canonical for route in app.router.routes() if route.resource is not None}
    )

    async def root_handler(request: web.Request) -> web.Response:
        return json_response({"service": SERVICE_NAME, "endpoints": endpoints})

    app.router.add_get("/", root_handler)
    return app
