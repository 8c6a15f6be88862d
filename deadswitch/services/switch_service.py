# deadswitch/services/switch_service.py
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Iterable, Optional

from deadswitch.config import Settings
from deadswitch.domain import Channel, Recipient, Reminder, Switch, SwitchStatus
from deadswitch.errors import AlreadyTriggered, InvalidSwitchConfig, SwitchConflict, SwitchNotFound
from deadswitch.repositories.store import SwitchStore
from deadswitch.services.notification_service import NotificationService
from deadswitch.utils.dates import now_utc

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
PHONE_RE = re.compile(r"^\+?[1-9][0-9]{6,14}$")

MAX_CAS_ATTEMPTS = 3

_UNSET: Any = object()


@dataclass
class SwitchDetails:
    """То, что видит владелец. Ключа здесь нет и быть не может."""

    switch: Switch
    recipients: list[Recipient] = field(default_factory=list)
    reminders: list[Reminder] = field(default_factory=list)
    unconfigured_channels: list[Channel] = field(default_factory=list)


class SwitchService:
    """
    Операции владельца над свитчем (то, что дёргает внешний API):
      - создать / изменить / удалить свитч
      - включить / выключить (включение = новый отсчёт)
      - добавить / удалить получателя и напоминание
      - статус
    """

    def __init__(
        self,
        store: SwitchStore,
        cfg: Settings,
        *,
        notifier: Optional[NotificationService] = None,
        clock: Callable[[], datetime] = now_utc,
    ) -> None:
        self.store = store
        self.cfg = cfg
        self.notifier = notifier
        self.clock = clock

    # ---------- валидация ----------

    def _validate_timer(self, timer: timedelta, warning: timedelta) -> None:
        secs = timer.total_seconds()
        if secs < self.cfg.MIN_TIMER_SECONDS or secs > self.cfg.MAX_TIMER_SECONDS:
            raise InvalidSwitchConfig(
                f"timer must be between {self.cfg.MIN_TIMER_SECONDS}s and {self.cfg.MAX_TIMER_SECONDS}s"
            )
        if warning < timedelta(0) or warning >= timer:
            raise InvalidSwitchConfig("warning period must be non-negative and shorter than the timer")

    def _validate_message(self, message: Optional[str]) -> None:
        if message is not None and len(message) > self.cfg.MAX_TRIGGER_MESSAGE_LEN:
            raise InvalidSwitchConfig("trigger message is too long")

    def _validate_recipient(self, address: str, channel: Channel, personal_message: Optional[str]) -> None:
        if channel == Channel.EMAIL and not EMAIL_RE.match(address):
            raise InvalidSwitchConfig(f"invalid email address: {address!r}")
        if channel == Channel.SMS and not PHONE_RE.match(address):
            raise InvalidSwitchConfig(f"invalid phone number: {address!r}")
        if personal_message is not None and len(personal_message) > self.cfg.MAX_PERSONAL_MESSAGE_LEN:
            raise InvalidSwitchConfig("personal message is too long")

    def _validate_reminder(self, offset: timedelta, timer: timedelta, existing: Iterable[Reminder]) -> None:
        if offset <= timedelta(0):
            raise InvalidSwitchConfig("reminder offset must be positive")
        if offset >= timer:
            raise InvalidSwitchConfig("reminder time cannot be greater than or equal to the timer duration")
        if any(r.offset_before_deadline == offset for r in existing):
            raise InvalidSwitchConfig("a reminder with this time already exists")

    @staticmethod
    def _validate_payload(encrypted_payload: Optional[bytes], payload_key: Optional[bytes]) -> None:
        if (encrypted_payload is None) != (payload_key is None):
            raise InvalidSwitchConfig("encrypted payload and payload key must be set together")

    async def _owned(self, switch_id: int, owner_id: Optional[int]) -> Switch:
        return await self.store.get(switch_id, owner_id=owner_id)

    async def _owned_mutable(self, switch_id: int, owner_id: Optional[int]) -> Switch:
        sw = await self._owned(switch_id, owner_id)
        if sw.has_triggered:
            raise AlreadyTriggered("cannot modify a triggered switch", switch_id=sw.id)
        return sw

    # ---------- свитч ----------

    async def create_switch(
        self,
        *,
        owner_id: int,
        owner_email: str,
        timer_duration: timedelta,
        warning_period: timedelta = timedelta(0),
        trigger_message: Optional[str] = None,
        encrypted_payload: Optional[bytes] = None,
        payload_key: Optional[bytes] = None,
        recipients: Iterable[dict] = (),
        reminder_offsets: Optional[Iterable[timedelta]] = None,
        enabled: bool = False,
    ) -> Switch:
        recipients = list(recipients)
        self._validate_timer(timer_duration, warning_period)
        self._validate_message(trigger_message)
        self._validate_payload(encrypted_payload, payload_key)
        if not EMAIL_RE.match(owner_email):
            raise InvalidSwitchConfig(f"invalid owner email: {owner_email!r}")
        if len(recipients) > self.cfg.MAX_RECIPIENTS:
            raise InvalidSwitchConfig(f"maximum {self.cfg.MAX_RECIPIENTS} recipients allowed")
        for r in recipients:
            r["channel"] = Channel(r.get("channel", Channel.EMAIL))
            self._validate_recipient(r["address"], r["channel"], r.get("personal_message"))
        if enabled and not recipients:
            raise InvalidSwitchConfig("add at least one recipient before enabling the switch")

        if reminder_offsets is None:
            reminder_offsets = [
                timedelta(hours=h) for h in self.cfg.DEFAULT_REMINDER_HOURS_BEFORE
                if timedelta(hours=h) < timer_duration
            ]
        offsets: list[Reminder] = []
        for off in reminder_offsets:
            self._validate_reminder(off, timer_duration, offsets)
            offsets.append(Reminder(id=0, switch_id=0, offset_before_deadline=off))
        if len(offsets) > self.cfg.MAX_REMINDERS:
            raise InvalidSwitchConfig(f"maximum {self.cfg.MAX_REMINDERS} reminders allowed")

        now = self.clock()
        return await self.store.create_switch(
            recipients=recipients,
            reminder_offsets=[r.offset_before_deadline for r in offsets],
            owner_id=owner_id,
            owner_email=owner_email,
            is_enabled=enabled,
            timer_seconds=int(timer_duration.total_seconds()),
            warning_seconds=int(warning_period.total_seconds()),
            last_check_in=now,
            next_deadline=now + timer_duration,
            status=(SwitchStatus.ACTIVE if enabled else SwitchStatus.DISABLED).value,
            trigger_message=trigger_message,
            encrypted_payload=encrypted_payload,
            payload_key=payload_key,
            has_payload=encrypted_payload is not None,
        )

    async def update_switch(
        self,
        switch_id: int,
        *,
        owner_id: Optional[int] = None,
        timer_duration: Optional[timedelta] = None,
        warning_period: Optional[timedelta] = None,
        trigger_message: Any = _UNSET,
        is_enabled: Optional[bool] = None,
        encrypted_payload: Any = _UNSET,
        payload_key: Any = _UNSET,
    ) -> Switch:
        for _ in range(MAX_CAS_ATTEMPTS):
            sw = await self._owned_mutable(switch_id, owner_id)
            values = await self._plan_update(
                sw,
                timer_duration=timer_duration,
                warning_period=warning_period,
                trigger_message=trigger_message,
                is_enabled=is_enabled,
                encrypted_payload=encrypted_payload,
                payload_key=payload_key,
            )
            if not values:
                return sw
            updated = await self.store.update_switch(sw.id, sw.version, **values)
            if updated is not None:
                logger.info("switch updated: fields=%s", sorted(values), extra={"switch_id": sw.id})
                return updated
        sw = await self._owned_mutable(switch_id, owner_id)
        raise SwitchConflict("switch changed concurrently, retry later", switch_id=sw.id)

    async def _plan_update(
        self,
        sw: Switch,
        *,
        timer_duration: Optional[timedelta],
        warning_period: Optional[timedelta],
        trigger_message: Any,
        is_enabled: Optional[bool],
        encrypted_payload: Any,
        payload_key: Any,
    ) -> dict:
        values: dict[str, Any] = {}
        timer = timer_duration if timer_duration is not None else sw.timer_duration
        warning = warning_period if warning_period is not None else sw.warning_period

        if timer_duration is not None or warning_period is not None:
            self._validate_timer(timer, warning)
            if timer_duration is not None:
                reminders = (await self.store.list_reminders([sw.id])).get(sw.id, [])
                if any(r.offset_before_deadline >= timer for r in reminders):
                    raise InvalidSwitchConfig("timer must be longer than every reminder offset")
                values["timer_seconds"] = int(timer.total_seconds())
                values["next_deadline"] = sw.last_check_in + timer
            if warning_period is not None:
                values["warning_seconds"] = int(warning.total_seconds())
            deadline = values.get("next_deadline", sw.next_deadline)
            if sw.status == SwitchStatus.WARNING and (
                warning <= timedelta(0) or self.clock() < deadline - warning
            ):
                # окно предупреждения сдвинулось вперёд, тик вернёт warning сам, когда придёт время
                values["status"] = SwitchStatus.ACTIVE.value

        if trigger_message is not _UNSET:
            self._validate_message(trigger_message)
            values["trigger_message"] = trigger_message

        if encrypted_payload is not _UNSET or payload_key is not _UNSET:
            if encrypted_payload is _UNSET or payload_key is _UNSET:
                raise InvalidSwitchConfig("encrypted payload and payload key must be set together")
            self._validate_payload(encrypted_payload, payload_key)
            values["encrypted_payload"] = encrypted_payload
            values["payload_key"] = payload_key
            values["has_payload"] = encrypted_payload is not None

        if is_enabled is True and not sw.is_enabled:
            if await self.store.count_recipients(sw.id) == 0:
                raise InvalidSwitchConfig("add at least one recipient before enabling the switch")
            # включение = новый отсчёт, без «догоняющего» срабатывания за простой
            now = self.clock()
            values.update(
                is_enabled=True,
                status=SwitchStatus.ACTIVE.value,
                last_check_in=now,
                next_deadline=now + timer,
            )
        elif is_enabled is False and sw.is_enabled:
            values.update(is_enabled=False, status=SwitchStatus.DISABLED.value)

        return values

    async def delete_switch(self, switch_id: int, *, owner_id: Optional[int] = None) -> None:
        sw = await self._owned(switch_id, owner_id)
        await self.store.delete_switch(sw.id)
        logger.info("switch deleted", extra={"switch_id": sw.id})

    async def get_details(self, switch_id: int, *, owner_id: Optional[int] = None) -> SwitchDetails:
        sw = await self._owned(switch_id, owner_id)
        recipients = await self.store.list_recipients(sw.id)
        reminders = (await self.store.list_reminders([sw.id])).get(sw.id, [])
        unconfigured: list[Channel] = []
        if self.notifier is not None:
            for ch in sorted({r.channel for r in recipients}, key=lambda c: c.value):
                if not self.notifier.is_configured(ch):
                    unconfigured.append(ch)
        return SwitchDetails(sw, recipients, reminders, unconfigured)

    async def list_switches(self, owner_id: int) -> list[Switch]:
        return await self.store.list_for_owner(owner_id)

    async def get_public_payload(self, switch_id: int) -> tuple[Switch, bytes]:
        """
        Зашифрованный контент для получателя, только после срабатывания.
        До этого (и если контента нет) отвечаем «не найдено», без подсказок.
        Ключ отсюда не отдаётся: он ушёл получателям в письмах.
        """
        sw, payload = await self.store.get_payload(switch_id)
        if not sw.has_triggered or payload is None:
            raise SwitchNotFound(f"no released payload for switch {switch_id}", switch_id=switch_id)
        return sw, payload

    # ---------- получатели ----------

    async def add_recipient(
        self,
        switch_id: int,
        *,
        address: str,
        channel: Channel = Channel.EMAIL,
        owner_id: Optional[int] = None,
        name: Optional[str] = None,
        personal_message: Optional[str] = None,
        content_filter: Optional[str] = None,
    ) -> Recipient:
        sw = await self._owned_mutable(switch_id, owner_id)
        self._validate_recipient(address, channel, personal_message)
        if await self.store.count_recipients(sw.id) >= self.cfg.MAX_RECIPIENTS:
            raise InvalidSwitchConfig(f"maximum {self.cfg.MAX_RECIPIENTS} recipients allowed")
        return await self.store.add_recipient(
            sw.id,
            address=address,
            channel=channel,
            name=name,
            personal_message=personal_message,
            content_filter=content_filter,
        )

    async def remove_recipient(self, switch_id: int, recipient_id: int, *, owner_id: Optional[int] = None) -> Switch:
        sw = await self._owned_mutable(switch_id, owner_id)
        if not await self.store.remove_recipient(sw.id, recipient_id):
            raise SwitchNotFound(f"recipient {recipient_id} not found", switch_id=sw.id)
        if sw.is_enabled and await self.store.count_recipients(sw.id) == 0:
            # последний получатель ушёл, свитч выключаем, срабатывать некуда
            logger.info("last recipient removed, disabling switch", extra={"switch_id": sw.id})
            return await self.update_switch(sw.id, owner_id=owner_id, is_enabled=False)
        return await self._owned(sw.id, owner_id)

    # ---------- напоминания ----------

    async def add_reminder(
        self, switch_id: int, offset: timedelta, *, owner_id: Optional[int] = None
    ) -> Reminder:
        sw = await self._owned_mutable(switch_id, owner_id)
        existing = (await self.store.list_reminders([sw.id])).get(sw.id, [])
        if len(existing) >= self.cfg.MAX_REMINDERS:
            raise InvalidSwitchConfig(f"maximum {self.cfg.MAX_REMINDERS} reminders allowed")
        self._validate_reminder(offset, sw.timer_duration, existing)
        return await self.store.add_reminder(sw.id, offset)

    async def remove_reminder(self, switch_id: int, reminder_id: int, *, owner_id: Optional[int] = None) -> None:
        sw = await self._owned_mutable(switch_id, owner_id)
        if not await self.store.remove_reminder(sw.id, reminder_id):
            raise SwitchNotFound(f"reminder {reminder_id} not found", switch_id=sw.id)
