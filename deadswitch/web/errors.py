# deadswitch/web/errors.py
from __future__ import annotations

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from deadswitch.errors import SwitchError

log = logging.getLogger("deadswitch.web.errors")

STATUS_BY_CODE = {
    "not_found": 404,
    "already_triggered": 409,
    "disabled": 409,
    "conflict": 409,
    "invalid_config": 400,
    "channel_not_configured": 400,
    "delivery_failed": 502,
}


async def switch_error_handler(request: Request, exc: SwitchError):
    rid = getattr(request.state, "request_id", "-")
    status = STATUS_BY_CODE.get(exc.code, 400)
    log.info(
        "switch_error %s: %s", exc.code, exc,
        extra={"rid": rid, "switch_id": exc.switch_id if exc.switch_id is not None else "-"},
    )
    return JSONResponse({"ok": False, "error": exc.code, "detail": str(exc), "rid": rid}, status_code=status)


async def unhandled_exception_handler(request: Request, exc: Exception):
    rid = getattr(request.state, "request_id", "-")
    log.error(
        "unhandled_exception on %s: %s", request.url.path, type(exc).__name__,
        extra={"rid": rid}, exc_info=exc,
    )
    # не палим детали наружу, но даем признак
    return JSONResponse({"ok": False, "error": "internal_error", "rid": rid}, status_code=500)
