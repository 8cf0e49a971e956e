from __future__ import annotations

import logging
import uuid

from aiohttp import web

from advanced_cache.application.request_context import request_id_var
from advanced_cache.transport.active_requests import ActiveRequests

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "x-request-id"


@web.middleware
async def request_id_middleware(request: web.Request, handler):
    request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
    token = request_id_var.set(request_id)
    try:
        response = await handler(request)
    finally:
        request_id_var.reset(token)

    response.headers[REQUEST_ID_HEADER] = request_id
    return response


def active_requests_middleware(active_requests: ActiveRequests):
    @web.middleware
    async def middleware(request: web.Request, handler):
        with active_requests.tracking():
            logger.debug("Request started %s %s (active=%s)", request.method, request.path, active_requests.value)
            try:
                return await handler(request)
            finally:
                logger.debug("Request finished %s %s", request.method, request.path)

    return middleware
