# deadswitch/scheduler/jobs.py
from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, Set

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from deadswitch.config import Settings
from deadswitch.domain import Reminder, Switch
from deadswitch.errors import ChannelNotConfigured, DeliveryError
from deadswitch.repositories.store import SwitchStore
from deadswitch.services.cache import TTLCache
from deadswitch.services.messages import WARNING_SUBJECT, build_reminder_message
from deadswitch.services.notification_service import NotificationService
from deadswitch.services.reminder_tracker import due_reminders, needs_warning_status
from deadswitch.services.trigger_executor import TriggerExecutor
from deadswitch.utils.dates import now_utc

logger = logging.getLogger(__name__)

LEASE_KEY = "deadswitch:tick-lease"


@dataclass
class TickReport:
    tick_id: str
    checked: int = 0
    triggered: int = 0
    reminders_sent: int = 0
    warnings: int = 0
    errors: int = 0
    skipped: bool = False


class ReconciliationLoop:
    """
    Один тик = сверка всех включённых и не сработавших свитчей с часами.

    Каждый свитч обрабатывается отдельно, в пуле на семафоре: ошибка одного
    логируется и не останавливает остальных. Повторный/параллельный тик
    безопасен, решения принимает стор условными UPDATE.
    """

    def __init__(
        self,
        store: SwitchStore,
        executor: TriggerExecutor,
        notifier: NotificationService,
        *,
        base_url: str,
        max_workers: int = 8,
        cache: Optional[TTLCache] = None,
        lease_seconds: int = 55,
        clock: Callable[[], datetime] = now_utc,
    ) -> None:
        self.store = store
        self.executor = executor
        self.notifier = notifier
        self.base_url = base_url
        self.max_workers = max(1, max_workers)
        self.cache = cache
        self.lease_seconds = lease_seconds
        self.clock = clock
        self._sem = asyncio.Semaphore(self.max_workers)
        self._inflight: Set[asyncio.Task] = set()
        self._stopping = False

    @property
    def stopping(self) -> bool:
        return self._stopping

    async def tick(self) -> TickReport:
        """Точка входа для APScheduler."""
        return await self.run_once()

    async def run_once(self, now: Optional[datetime] = None) -> TickReport:
        tick_id = uuid.uuid4().hex[:8]
        report = TickReport(tick_id=tick_id)
        if self._stopping:
            report.skipped = True
            return report

        task = asyncio.current_task()
        if task is not None:
            self._inflight.add(task)
        try:
            if self.cache is not None and not await self.cache.acquire(LEASE_KEY, tick_id, self.lease_seconds):
                logger.debug("tick skipped: lease held elsewhere", extra={"tick_id": tick_id})
                report.skipped = True
                return report
            try:
                await self._reconcile(report, now or self.clock())
            finally:
                if self.cache is not None:
                    await self.cache.release(LEASE_KEY, tick_id)
        finally:
            if task is not None:
                self._inflight.discard(task)

        level = logging.INFO if (report.triggered or report.reminders_sent or report.errors) else logging.DEBUG
        logger.log(
            level,
            "tick done: checked=%d triggered=%d reminders=%d warnings=%d errors=%d",
            report.checked, report.triggered, report.reminders_sent, report.warnings, report.errors,
            extra={"tick_id": tick_id},
        )
        return report

    async def _reconcile(self, report: TickReport, now: datetime) -> None:
        switches = await self.store.list_eligible()
        report.checked = len(switches)
        if not switches:
            return
        reminders = await self.store.list_reminders([sw.id for sw in switches])
        await asyncio.gather(*(
            self._guarded(sw, reminders.get(sw.id, []), now, report) for sw in switches
        ))

    async def _guarded(self, switch: Switch, reminders: list[Reminder], now: datetime, report: TickReport) -> None:
        async with self._sem:
            try:
                await self._handle(switch, reminders, now, report)
            except Exception:
                report.errors += 1
                logger.exception(
                    "switch processing failed", extra={"switch_id": switch.id, "tick_id": report.tick_id}
                )

    async def _handle(self, switch: Switch, reminders: list[Reminder], now: datetime, report: TickReport) -> None:
        if now >= switch.next_deadline:
            if await self.executor.execute(switch, now) is not None:
                report.triggered += 1
            return

        sent_any = False
        for reminder in due_reminders(switch, reminders, now):
            if await self._send_reminder(switch, reminder, now, report.tick_id):
                report.reminders_sent += 1
                sent_any = True

        entering = needs_warning_status(switch, now)
        if not (sent_any or entering):
            return
        if not await self.store.mark_warning(switch.id, switch.version):
            # снимок устарел (check-in, правка) или статус уже warning
            return
        if entering and not sent_any and not await self._send_warning(switch, now, report.tick_id):
            return
        report.warnings += 1
        logger.info("switch entered warning", extra={"switch_id": switch.id, "tick_id": report.tick_id})

    async def _send_warning(self, switch: Switch, now: datetime, tick_id: str) -> bool:
        """
        Письмо владельцу при входе в warning. Занятый статус и есть маркер цикла:
        если письмо не ушло, возвращаем active, и следующий тик попробует снова.
        """
        msg = build_reminder_message(switch, now, base_url=self.base_url, subject=WARNING_SUBJECT)
        try:
            await self.notifier.send(msg, switch_id=switch.id)
        except (ChannelNotConfigured, DeliveryError) as e:
            logger.warning(
                "warning notice not delivered: %s", e.code,
                extra={"switch_id": switch.id, "tick_id": tick_id},
            )
            await self.store.release_warning(switch.id, switch.version + 1)
            return False
        return True

    async def _send_reminder(self, switch: Switch, reminder: Reminder, now: datetime, tick_id: str) -> bool:
        claimed = await self.store.update_reminder_marker(
            switch.id, reminder.id, True, cycle=switch.last_check_in, now=now
        )
        if not claimed:
            # другой тик успел, либо был check-in
            return False

        msg = build_reminder_message(switch, now, base_url=self.base_url)
        try:
            await self.notifier.send(msg, switch_id=switch.id)
        except (ChannelNotConfigured, DeliveryError) as e:
            logger.warning(
                "reminder %s not delivered: %s", reminder.id, e.code,
                extra={"switch_id": switch.id, "tick_id": tick_id},
            )
            await self.store.update_reminder_marker(switch.id, reminder.id, False, now=now)
            return False

        logger.info(
            "reminder %s sent (%ss before deadline)",
            reminder.id, int(reminder.offset_before_deadline.total_seconds()),
            extra={"switch_id": switch.id, "tick_id": tick_id},
        )
        return True

    async def report_stalled(self) -> int:
        """Сработавшие, но без итога доставки (падение посреди раскрытия). Не перезапускаем."""
        stalled = await self.store.list_stalled_deliveries()
        for sw in stalled:
            logger.error(
                "delivery stalled at pending since %s, needs manual follow-up",
                sw.triggered_at.isoformat() if sw.triggered_at else "-",
                extra={"switch_id": sw.id},
            )
        return len(stalled)

    def stop(self) -> None:
        self._stopping = True

    async def drain(self, timeout: float) -> bool:
        """True, если все тики дожили до конца; False, если кто-то не успел за timeout."""
        pending = {t for t in self._inflight if not t.done()}
        if not pending:
            return True
        done, not_done = await asyncio.wait(pending, timeout=timeout)
        if not_done:
            logger.warning("drain timeout: %d tick(s) still running", len(not_done))
            return False
        return True


def setup_scheduler(scheduler: AsyncIOScheduler, loop: ReconciliationLoop, cfg: Settings) -> None:
    """
    Регистрирует периодический тик.
    Вызывается один раз при старте воркера.
    """
    scheduler.add_job(
        loop.tick,
        trigger="interval",
        seconds=cfg.SCHEDULER_TICK_SECONDS,
        id="reconcile_switches",
        replace_existing=True,
        coalesce=True,
        max_instances=1,          # тики в процессе не перекрываются
        misfire_grace_time=cfg.SCHEDULER_TICK_SECONDS,
    )
