# deadswitch/web/middleware_logging.py
from __future__ import annotations

import logging
import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

log = logging.getLogger("deadswitch.http")


class LoggingMiddleware(BaseHTTPMiddleware):
    """request-id на каждый запрос; тело не читаем и не логируем (там payload/ключи)."""

    async def dispatch(self, request: Request, call_next: Callable):
        rid = request.headers.get("x-request-id") or uuid.uuid4().hex
        start = time.perf_counter()
        method = request.method
        path = request.url.path

        request.state.request_id = rid
        log.debug("http_request %s %s", method, path, extra={"rid": rid})

        try:
            response: Response = await call_next(request)
        except Exception:
            elapsed = (time.perf_counter() - start) * 1000
            log.exception("http_error %s %s %.1fms", method, path, elapsed, extra={"rid": rid})
            raise

        elapsed = (time.perf_counter() - start) * 1000
        log.info(
            "http_response %s %s -> %d %.1fms", method, path, response.status_code, elapsed,
            extra={"rid": rid},
        )
        response.headers["x-request-id"] = rid
        return response
