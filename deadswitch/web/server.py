# deadswitch/web/server.py
from __future__ import annotations

import logging
import platform
from typing import Any, Optional

import uvicorn
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from deadswitch import __version__
from deadswitch.config import settings
from deadswitch.container import build_services
from deadswitch.core.logging import attach_ctx_filter, setup_logging
from deadswitch.db import SessionLocal, engine, init_db
from deadswitch.errors import SwitchError
from deadswitch.web.errors import switch_error_handler, unhandled_exception_handler
from deadswitch.web.middleware_logging import LoggingMiddleware
from deadswitch.web.routes import router as api_router

log = logging.getLogger("deadswitch.startup")


def create_app(services: Optional[dict[str, Any]] = None) -> FastAPI:
    """
    services: готовый контейнер (тесты). Без него собираем свой на старте,
    поверх общего SessionLocal.
    """
    app = FastAPI(title="Dead Man's Switch", version=__version__)
    app.state.services = services

    # Middleware
    app.add_middleware(LoggingMiddleware)

    # Routers
    app.include_router(api_router)

    @app.on_event("startup")
    async def on_startup():
        if app.state.services is not None:
            return
        setup_logging()
        attach_ctx_filter()
        if settings.INIT_DB_ON_START:
            await init_db()
        app.state.services = build_services(settings, SessionLocal)
        log.info(
            "app_startup | platform=%s python=%s base_url=%s smtp=%s sms=%s",
            platform.platform(),
            platform.python_version(),
            settings.PUBLIC_BASE_URL,
            settings.smtp_configured,
            settings.sms_configured,
        )

    @app.on_event("shutdown")
    async def on_shutdown():
        await engine.dispose()

    @app.exception_handler(SwitchError)
    async def _switch_error(request, exc: SwitchError):
        return await switch_error_handler(request, exc)

    @app.exception_handler(Exception)
    async def _unhandled(request, exc):
        return await unhandled_exception_handler(request, exc)

    @app.exception_handler(RequestValidationError)
    async def _validation(request, exc: RequestValidationError):
        rid = getattr(request.state, "request_id", "-")
        # тела запроса в логе быть не должно: там payload и ключ
        fields = [".".join(str(p) for p in e.get("loc", ())) for e in exc.errors()]
        logging.getLogger("deadswitch.web.errors").warning(
            "validation_error fields=%s", fields, extra={"rid": rid}
        )
        detail = [{"loc": e.get("loc"), "msg": e.get("msg"), "type": e.get("type")} for e in exc.errors()]
        return JSONResponse(
            {"ok": False, "error": "validation_error", "detail": detail, "rid": rid},
            status_code=422,
        )

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "deadswitch.web.server:app",
        host=settings.WEBAPP_HOST,
        port=settings.WEBAPP_PORT,
        log_level=settings.log_level.lower(),
        access_log=False,
    )
