# deadswitch/main.py
from __future__ import annotations

import asyncio
import logging
import signal
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from deadswitch.config import settings
from deadswitch.container import build_services
from deadswitch.core.logging import attach_ctx_filter, setup_logging
from deadswitch.db import SessionLocal, engine, init_db
from deadswitch.scheduler.jobs import ReconciliationLoop, setup_scheduler

# ---- Логи первыми ----
setup_logging()
attach_ctx_filter()
logger = logging.getLogger("deadswitch.main")


async def main() -> None:
    logger.info(
        "boot: starting worker with LOG_LEVEL=%s tick=%ss workers=%s smtp=%s sms=%s",
        settings.log_level,
        settings.SCHEDULER_TICK_SECONDS,
        settings.SCHEDULER_MAX_WORKERS,
        settings.smtp_configured,
        settings.sms_configured,
    )

    # DB init: в проде миграции через Alembic, create_all только если явно включили
    if settings.INIT_DB_ON_START:
        await init_db()
        logger.info("DB init done (create_all enabled by ENV)")
    else:
        logger.info("DB init skipped (use alembic upgrade head)")

    services: dict[str, Any] = build_services(settings, SessionLocal)
    reconciler: ReconciliationLoop = services["loop"]

    stalled = await reconciler.report_stalled()
    if stalled:
        logger.warning("%d switch(es) have stalled deliveries", stalled)

    # ---------- Scheduler ----------
    scheduler = AsyncIOScheduler(timezone=settings.SCHEDULER_TZ)
    setup_scheduler(scheduler, reconciler, settings)
    scheduler.start()
    # первый тик сразу, не ждём интервал
    await reconciler.tick()

    # Корректное завершение по сигналам
    stop_evt = asyncio.Event()
    loop = asyncio.get_running_loop()

    def _stop(*_: object) -> None:
        stop_evt.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, _stop)
        except NotImplementedError:
            pass

    await stop_evt.wait()

    # ---------- Shutdown ----------
    logger.info("shutdown: stop accepting ticks")
    reconciler.stop()

    try:
        scheduler.shutdown(wait=False)
    except Exception:
        logger.exception("scheduler shutdown failed")

    if not await reconciler.drain(settings.SCHEDULER_DRAIN_SECONDS):
        logger.warning("shutdown: in-flight tick abandoned, claims stay persisted")

    try:
        if reconciler.cache is not None:
            await reconciler.cache.close()
    except Exception:
        logger.exception("cache close failed")

    # dispose engine
    try:
        await engine.dispose()
    except Exception:
        logger.exception("engine dispose failed")


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
