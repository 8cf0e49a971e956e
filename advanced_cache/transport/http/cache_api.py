from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any

from aiohttp import web

from advanced_cache.application.request_context import request_id_var
from advanced_cache.application.service import CacheApplicationService

logger = logging.getLogger(__name__)


def json_response(payload: Any, status: int = 200) -> web.Response:
    return web.Response(text=json.dumps(payload), status=status, content_type="application/json")


def error_response(status: int, message: str) -> web.Response:
    return json_response({"status": "error", "message": message}, status=status)


def _internal_error(operation: str) -> web.Response:
    request_id = request_id_var.get()
    logger.exception("%s failed", operation)
    return error_response(500, f"Internal server error (request_id={request_id})")


class CacheApiHandler:
    """Key/value routes over the cache application service."""

    def __init__(self, app: CacheApplicationService):
        self._app = app

    def _log_request(self, operation: str, key: str, started: float, result: str) -> None:
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.debug(
            "%s key=%s result=%s elapsed=%.2fms",
            operation,
            key,
            result,
            elapsed_ms,
            extra={"cache_key": key},
        )

    async def get(self, request: web.Request) -> web.Response:
        key = request.match_info["key"]
        started = time.perf_counter()
        try:
            value = await asyncio.to_thread(self._app.get, key)
        except (TypeError, ValueError) as exc:
            return error_response(400, str(exc))
        except Exception:
            return _internal_error("GET")

        if value is None:
            self._log_request("GET", key, started, "MISS")
            return json_response({"key": key, "found": False}, status=404)

        self._log_request("GET", key, started, "HIT")
        return json_response({"key": key, "found": True, "value": value})

    async def put(self, request: web.Request) -> web.Response:
        key = request.match_info["key"]
        started = time.perf_counter()
        try:
            body = await request.json()
        except ValueError:
            return error_response(400, "Request body must be JSON")

        if not isinstance(body, dict) or "value" not in body:
            return error_response(400, "Request body must be an object with a 'value' field")
        if body["value"] is None:
            return error_response(400, "'value' must not be null")

        try:
            await asyncio.to_thread(self._app.set, key, body["value"], body.get("ttl_ms"))
        except (TypeError, ValueError) as exc:
            return error_response(400, str(exc))
        except Exception:
            return _internal_error("SET")

        self._log_request("SET", key, started, "OK")
        return json_response({"status": "OK"})

    async def delete(self, request: web.Request) -> web.Response:
        key = request.match_info["key"]
        started = time.perf_counter()
        try:
            removed = await asyncio.to_thread(self._app.delete, key)
        except (TypeError, ValueError) as exc:
            return error_response(400, str(exc))
        except Exception:
            return _internal_error("DELETE")

        self._log_request("DELETE", key, started, "OK" if removed else "MISS")
        if not removed:
            return json_response({"status": "NOT_FOUND"}, status=404)
        return json_response({"status": "OK"})

    async def keys(self, request: web.Request) -> web.Response:
        try:
            keys = await asyncio.to_thread(self._app.keys)
        except Exception:
            return _internal_error("KEYS")
        return json_response({"keys": keys, "count": len(keys)})

    async def clear(self, request: web.Request) -> web.Response:
        try:
            await asyncio.to_thread(self._app.clear)
        except Exception:
            return _internal_error("CLEAR")
        logger.info("Cache cleared")
        return json_response({"status": "OK"})


def add_cache_routes(app: web.Application, cache_app: CacheApplicationService) -> None:
    handler = CacheApiHandler(cache_app)
    app.router.add_get("/cache", handler.keys)
    app.router.add_post("/cache/clear", handler.clear)
    app.router.add_get("/cache/{key}", handler.get)
    app.router.add_put("/cache/{key}", handler.put)
    app.router.add_delete("/cache/{key}", handler.delete)
