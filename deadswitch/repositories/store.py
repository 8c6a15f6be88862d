# deadswitch/repositories/store.py
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from deadswitch.domain import Channel, Recipient, Reminder, Switch, TriggerOutcome
from deadswitch.errors import SwitchNotFound
from deadswitch.repositories import recipient_repo, reminder_repo, switch_repo
from deadswitch.repositories.recipient_repo import RecipientRepo
from deadswitch.repositories.reminder_repo import ReminderRepo
from deadswitch.repositories.switch_repo import SwitchRepo

logger = logging.getLogger(__name__)


class SwitchStore:
    """
    Единственный источник правды для свитчей.

    Каждая операция = отдельная сессия и транзакция, поэтому стор можно
    дёргать конкурентно из пула воркеров. Гарантия at-most-once держится на
    условных UPDATE (claim_trigger / check_in / update_reminder_marker),
    а не на локах процесса.
    """

    def __init__(self, sessions: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = sessions

    # ---------- свитчи: чтение ----------

    async def list_eligible(self) -> list[Switch]:
        """isEnabled && !hasTriggered, без секретов."""
        async with self._sessions() as s:
            rows = await SwitchRepo(s).list_eligible()
            return [switch_repo.to_record(m) for m in rows]

    async def get(self, switch_id: int, *, owner_id: Optional[int] = None) -> Switch:
        async with self._sessions() as s:
            m = await SwitchRepo(s).get(switch_id, owner_id=owner_id)
            if m is None:
                raise SwitchNotFound(f"switch {switch_id} not found", switch_id=switch_id)
            return switch_repo.to_record(m)

    async def list_for_owner(self, owner_id: int) -> list[Switch]:
        async with self._sessions() as s:
            rows = await SwitchRepo(s).list_for_owner(owner_id)
            return [switch_repo.to_record(m) for m in rows]

    async def list_stalled_deliveries(self) -> list[Switch]:
        async with self._sessions() as s:
            rows = await SwitchRepo(s).list_stalled_deliveries()
            return [switch_repo.to_record(m) for m in rows]

    async def get_payload(self, switch_id: int) -> tuple[Switch, Optional[bytes]]:
        """Зашифрованный payload (без ключа) для публичной выдачи после срабатывания."""
        async with self._sessions() as s:
            m = await SwitchRepo(s).get_with_secrets(switch_id)
            if m is None:
                raise SwitchNotFound(f"switch {switch_id} not found", switch_id=switch_id)
            return switch_repo.to_record(m), m.encrypted_payload

    # ---------- свитчи: запись ----------

    async def create_switch(
        self,
        *,
        recipients: Iterable[dict] = (),
        reminder_offsets: Iterable[timedelta] = (),
        **values: Any,
    ) -> Switch:
        async with self._sessions.begin() as s:
            m = await SwitchRepo(s).create(**values)
            await RecipientRepo(s).add_many(m.id, recipients)
            for offset in reminder_offsets:
                await ReminderRepo(s).add(m.id, offset)
            rec = switch_repo.to_record(m)
        logger.info("switch created", extra={"switch_id": rec.id})
        return rec

    async def update_switch(self, switch_id: int, expected_version: int, **values: Any) -> Optional[Switch]:
        """None: конфликт версии или свитч уже сработал."""
        async with self._sessions.begin() as s:
            repo = SwitchRepo(s)
            ok = await repo.update_if_version(switch_id, expected_version, values)
            if not ok:
                return None
            if values.get("last_check_in") is not None:
                # новый отсчёт = новый цикл напоминаний
                await ReminderRepo(s).clear_markers(switch_id)
            m = await repo.get(switch_id)
            return switch_repo.to_record(m)

    async def delete_switch(self, switch_id: int) -> bool:
        async with self._sessions.begin() as s:
            await RecipientRepo(s).remove_all(switch_id)
            await ReminderRepo(s).remove_all(switch_id)
            return await SwitchRepo(s).delete(switch_id) == 1

    async def claim_trigger(
        self, switch_id: int, expected_version: int, now: datetime
    ) -> tuple[bool, Optional[Switch]]:
        """
        Победитель получает запись вместе с payload_key, это единственное
        место, где ключ покидает стор.
        """
        async with self._sessions.begin() as s:
            repo = SwitchRepo(s)
            if not await repo.claim_trigger(switch_id, expected_version, now):
                return False, None
            m = await repo.get_with_secrets(switch_id)
            return True, switch_repo.to_record(m, with_secret=True)

    async def check_in(
        self, switch_id: int, expected_version: int, now: datetime, timer: timedelta
    ) -> tuple[bool, Optional[Switch]]:
        """
        Сдвиг дедлайна и сброс маркеров напоминаний одной транзакцией.
        При неудаче возвращаем свежую запись (или None, если её уже нет).
        """
        async with self._sessions.begin() as s:
            repo = SwitchRepo(s)
            ok = await repo.check_in(switch_id, expected_version, now, timer)
            if ok:
                await ReminderRepo(s).clear_markers(switch_id)
            m = await repo.get(switch_id)
            return ok, (switch_repo.to_record(m) if m is not None else None)

    async def mark_warning(self, switch_id: int, expected_version: int) -> bool:
        """False: после снимка был check-in/правка, либо статус уже не active."""
        async with self._sessions.begin() as s:
            return await SwitchRepo(s).mark_warning(switch_id, expected_version)

    async def release_warning(self, switch_id: int, expected_version: int) -> bool:
        async with self._sessions.begin() as s:
            return await SwitchRepo(s).release_warning(switch_id, expected_version)

    async def record_delivery(self, outcome: TriggerOutcome) -> None:
        error = "; ".join(outcome.errors) if outcome.errors else None
        async with self._sessions.begin() as s:
            await SwitchRepo(s).record_delivery(
                outcome.switch_id,
                sent=outcome.recipients_sent,
                failed=outcome.recipients_failed,
                status=outcome.delivery_status,
                error=error,
            )

    # ---------- получатели ----------

    async def list_recipients(self, switch_id: int) -> list[Recipient]:
        async with self._sessions() as s:
            rows = await RecipientRepo(s).list_for_switch(switch_id)
            return [recipient_repo.to_record(m) for m in rows]

    async def count_recipients(self, switch_id: int) -> int:
        async with self._sessions() as s:
            return await RecipientRepo(s).count(switch_id)

    async def add_recipient(self, switch_id: int, *, address: str, channel: Channel, **extra: Any) -> Recipient:
        async with self._sessions.begin() as s:
            m = await RecipientRepo(s).add(switch_id, address=address, channel=channel, **extra)
            return recipient_repo.to_record(m)

    async def remove_recipient(self, switch_id: int, recipient_id: int) -> bool:
        async with self._sessions.begin() as s:
            return await RecipientRepo(s).remove(switch_id, recipient_id)

    # ---------- напоминания ----------

    async def list_reminders(self, switch_ids: Iterable[int]) -> dict[int, list[Reminder]]:
        out: dict[int, list[Reminder]] = {}
        async with self._sessions() as s:
            for m in await ReminderRepo(s).list_for_switches(switch_ids):
                out.setdefault(m.switch_id, []).append(reminder_repo.to_record(m))
        return out

    async def add_reminder(self, switch_id: int, offset: timedelta) -> Reminder:
        async with self._sessions.begin() as s:
            m = await ReminderRepo(s).add(switch_id, offset)
            return reminder_repo.to_record(m)

    async def remove_reminder(self, switch_id: int, reminder_id: int) -> bool:
        async with self._sessions.begin() as s:
            return await ReminderRepo(s).remove(switch_id, reminder_id)

    async def update_reminder_marker(
        self,
        switch_id: int,
        reminder_id: int,
        sent: bool,
        *,
        cycle: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> bool:
        """
        sent=True: условно занять маркер для цикла `cycle` (нужны cycle и now);
        sent=False: снять маркер (если передан now, только свой же).
        """
        async with self._sessions.begin() as s:
            repo = ReminderRepo(s)
            if sent:
                if cycle is None or now is None:
                    raise ValueError("cycle and now are required to mark a reminder sent")
                return await repo.claim_marker(switch_id, reminder_id, cycle, now)
            return await repo.release_marker(switch_id, reminder_id, now)
