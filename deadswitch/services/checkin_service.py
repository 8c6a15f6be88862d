# deadswitch/services/checkin_service.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional

from deadswitch.domain import Switch
from deadswitch.errors import AlreadyTriggered, SwitchConflict, SwitchDisabled, SwitchNotFound
from deadswitch.repositories.store import SwitchStore
from deadswitch.utils.dates import now_utc

logger = logging.getLogger(__name__)

MAX_CAS_ATTEMPTS = 3


class CheckInService:
    def __init__(self, store: SwitchStore, clock: Callable[[], datetime] = now_utc) -> None:
        self.store = store
        self.clock = clock

    async def check_in(self, switch_id: int, *, owner_id: Optional[int] = None) -> Switch:
        """
        Владелец жив: дедлайн = now + timer, статус active, маркеры напоминаний
        сброшены. Гонку с claim решает условный UPDATE: кто первым закоммитил,
        тот и выиграл. Конфликт версии (тик поменял статус): перечитать и
        повторить.
        """
        switch = await self.store.get(switch_id, owner_id=owner_id)

        for _ in range(MAX_CAS_ATTEMPTS):
            _ensure_can_check_in(switch)
            now = self.clock()
            ok, fresh = await self.store.check_in(switch.id, switch.version, now, switch.timer_duration)
            if ok and fresh is not None:
                logger.info(
                    "check-in: next deadline %s", fresh.next_deadline.isoformat(),
                    extra={"switch_id": switch.id},
                )
                return fresh
            if fresh is None:
                raise SwitchNotFound(f"switch {switch_id} not found", switch_id=switch_id)
            switch = fresh

        # третий конфликт подряд: повторный вызов клиента разрулит
        _ensure_can_check_in(switch)
        logger.warning("check-in gave up after version conflicts", extra={"switch_id": switch.id})
        raise SwitchConflict("check-in kept conflicting, retry later", switch_id=switch_id)


def _ensure_can_check_in(switch: Switch) -> None:
    if switch.has_triggered:
        raise AlreadyTriggered("switch has already triggered", switch_id=switch.id)
    if not switch.is_enabled:
        raise SwitchDisabled("switch is not enabled", switch_id=switch.id)
