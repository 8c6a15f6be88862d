from datetime import datetime, timedelta
from typing import Iterable, Optional, Sequence

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from deadswitch.domain import Reminder
from deadswitch.models.reminder import ReminderModel
from deadswitch.models.switch import SwitchModel


def to_record(m: ReminderModel) -> Reminder:
    return Reminder(
        id=m.id,
        switch_id=m.switch_id,
        offset_before_deadline=timedelta(seconds=m.offset_seconds),
        sent_at=m.sent_at,
    )


class ReminderRepo:
    def __init__(self, s: AsyncSession) -> None:
        self.s = s

    async def list_for_switches(self, switch_ids: Iterable[int]) -> Sequence[ReminderModel]:
        ids = list(switch_ids)
        if not ids:
            return []
        res = await self.s.execute(
            select(ReminderModel)
            .where(ReminderModel.switch_id.in_(ids))
            .order_by(ReminderModel.switch_id, ReminderModel.offset_seconds.desc())
            .execution_options(populate_existing=True)
        )
        return res.scalars().all()

    async def add(self, switch_id: int, offset: timedelta) -> ReminderModel:
        r = ReminderModel(switch_id=switch_id, offset_seconds=int(offset.total_seconds()))
        self.s.add(r)
        await self.s.flush()
        return r

    async def remove(self, switch_id: int, reminder_id: int) -> bool:
        res = await self.s.execute(
            delete(ReminderModel).where(
                ReminderModel.id == reminder_id,
                ReminderModel.switch_id == switch_id,
            )
        )
        return (res.rowcount or 0) == 1

    async def remove_all(self, switch_id: int) -> int:
        res = await self.s.execute(delete(ReminderModel).where(ReminderModel.switch_id == switch_id))
        return res.rowcount or 0

    async def claim_marker(self, switch_id: int, reminder_id: int, cycle: datetime, now: datetime) -> bool:
        """
        Ставим маркер, только если он пуст и цикл тот же (last_check_in не
        сдвинулся). Гонка тиков даёт одного победителя на напоминание.
        """
        same_cycle = select(SwitchModel.id).where(
            SwitchModel.id == switch_id,
            SwitchModel.last_check_in == cycle,
            SwitchModel.has_triggered.is_(False),
        )
        res = await self.s.execute(
            update(ReminderModel)
            .where(
                ReminderModel.id == reminder_id,
                ReminderModel.switch_id.in_(same_cycle),
                ReminderModel.sent_at.is_(None),
            )
            .values(sent_at=now)
            .execution_options(synchronize_session=False)
        )
        return res.rowcount == 1

    async def release_marker(self, switch_id: int, reminder_id: int, marked_at: Optional[datetime] = None) -> bool:
        q = update(ReminderModel).where(
            ReminderModel.id == reminder_id,
            ReminderModel.switch_id == switch_id,
        )
        if marked_at is not None:
            # не трогаем чужой маркер из нового цикла
            q = q.where(ReminderModel.sent_at == marked_at)
        res = await self.s.execute(
            q.values(sent_at=None).execution_options(synchronize_session=False)
        )
        return res.rowcount == 1

    async def clear_markers(self, switch_id: int) -> None:
        await self.s.execute(
            update(ReminderModel)
            .where(ReminderModel.switch_id == switch_id, ReminderModel.sent_at.is_not(None))
            .values(sent_at=None)
            .execution_options(synchronize_session=False)
        )
