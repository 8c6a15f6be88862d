from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Optional, Sequence

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import defer

from deadswitch.domain import DeliveryStatus, Switch, SwitchStatus
from deadswitch.models.switch import SwitchModel


def to_record(m: SwitchModel, *, with_secret: bool = False) -> Switch:
    return Switch(
        id=m.id,
        owner_id=m.owner_id,
        owner_email=m.owner_email,
        is_enabled=m.is_enabled,
        timer_duration=timedelta(seconds=m.timer_seconds),
        warning_period=timedelta(seconds=m.warning_seconds),
        last_check_in=m.last_check_in,
        next_deadline=m.next_deadline,
        status=SwitchStatus(m.status),
        has_triggered=m.has_triggered,
        version=m.version,
        triggered_at=m.triggered_at,
        trigger_message=m.trigger_message,
        has_payload=m.has_payload,
        delivery_status=DeliveryStatus(m.delivery_status),
        recipients_sent=m.recipients_sent,
        recipients_failed=m.recipients_failed,
        delivery_error=m.delivery_error,
        encrypted_payload=m.encrypted_payload if with_secret else None,
        payload_key=m.payload_key if with_secret else None,
    )


# payload и ключ не грузим без нужды
_NO_SECRETS = (defer(SwitchModel.encrypted_payload), defer(SwitchModel.payload_key))


class SwitchRepo:
    """
    Операции над таблицей switches. Коммитов здесь нет: границы транзакции
    держит SwitchStore, чтобы check-in и сброс маркеров были атомарны.
    """

    def __init__(self, s: AsyncSession) -> None:
        self.s = s

    # ---------- чтение ----------

    async def get(self, switch_id: int, *, owner_id: Optional[int] = None) -> Optional[SwitchModel]:
        q = select(SwitchModel).options(*_NO_SECRETS).where(SwitchModel.id == switch_id)
        if owner_id is not None:
            q = q.where(SwitchModel.owner_id == owner_id)
        res = await self.s.execute(q.execution_options(populate_existing=True))
        return res.scalar_one_or_none()

    async def get_with_secrets(self, switch_id: int) -> Optional[SwitchModel]:
        res = await self.s.execute(
            select(SwitchModel)
            .where(SwitchModel.id == switch_id)
            .execution_options(populate_existing=True)
        )
        return res.scalar_one_or_none()

    async def list_eligible(self) -> Sequence[SwitchModel]:
        res = await self.s.execute(
            select(SwitchModel)
            .options(*_NO_SECRETS)
            .where(SwitchModel.is_enabled.is_(True), SwitchModel.has_triggered.is_(False))
            .order_by(SwitchModel.next_deadline)
        )
        return res.scalars().all()

    async def list_for_owner(self, owner_id: int) -> Sequence[SwitchModel]:
        res = await self.s.execute(
            select(SwitchModel)
            .options(*_NO_SECRETS)
            .where(SwitchModel.owner_id == owner_id)
            .order_by(SwitchModel.created_at.desc())
        )
        return res.scalars().all()

    async def list_stalled_deliveries(self) -> Sequence[SwitchModel]:
        res = await self.s.execute(
            select(SwitchModel)
            .options(*_NO_SECRETS)
            .where(
                SwitchModel.has_triggered.is_(True),
                SwitchModel.delivery_status == DeliveryStatus.PENDING.value,
            )
        )
        return res.scalars().all()

    # ---------- запись ----------

    async def create(self, **values: Any) -> SwitchModel:
        m = SwitchModel(**values)
        self.s.add(m)
        await self.s.flush()
        return m

    async def update_if_version(self, switch_id: int, expected_version: int, values: dict) -> bool:
        """Обычная правка конфига: только пока не сработал и версия совпадает."""
        res = await self.s.execute(
            update(SwitchModel)
            .where(
                SwitchModel.id == switch_id,
                SwitchModel.version == expected_version,
                SwitchModel.has_triggered.is_(False),
            )
            .values(**values, version=SwitchModel.version + 1)
            .execution_options(synchronize_session=False)
        )
        return res.rowcount == 1

    async def claim_trigger(self, switch_id: int, expected_version: int, now: datetime) -> bool:
        """
        Атомарный claim: ровно один победитель среди любых гонок.
        Условие целиком в WHERE, поэтому арбитр сама БД.
        """
        res = await self.s.execute(
            update(SwitchModel)
            .where(
                SwitchModel.id == switch_id,
                SwitchModel.version == expected_version,
                SwitchModel.is_enabled.is_(True),
                SwitchModel.has_triggered.is_(False),
                SwitchModel.next_deadline <= now,
            )
            .values(
                has_triggered=True,
                triggered_at=now,
                status=SwitchStatus.DELIVERED.value,
                delivery_status=DeliveryStatus.PENDING.value,
                version=SwitchModel.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        return res.rowcount == 1

    async def check_in(
        self,
        switch_id: int,
        expected_version: int,
        now: datetime,
        timer: timedelta,
    ) -> bool:
        res = await self.s.execute(
            update(SwitchModel)
            .where(
                SwitchModel.id == switch_id,
                SwitchModel.version == expected_version,
                SwitchModel.is_enabled.is_(True),
                SwitchModel.has_triggered.is_(False),
            )
            .values(
                last_check_in=now,
                next_deadline=now + timer,
                status=SwitchStatus.ACTIVE.value,
                version=SwitchModel.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        return res.rowcount == 1

    async def mark_warning(self, switch_id: int, expected_version: int) -> bool:
        """active -> warning, только для той версии, по которой тик принимал решение."""
        res = await self.s.execute(
            update(SwitchModel)
            .where(
                SwitchModel.id == switch_id,
                SwitchModel.version == expected_version,
                SwitchModel.status == SwitchStatus.ACTIVE.value,
                SwitchModel.is_enabled.is_(True),
                SwitchModel.has_triggered.is_(False),
            )
            .values(status=SwitchStatus.WARNING.value, version=SwitchModel.version + 1)
            .execution_options(synchronize_session=False)
        )
        return res.rowcount == 1

    async def release_warning(self, switch_id: int, expected_version: int) -> bool:
        # откат своего же mark_warning, если предупреждение владельцу не ушло
        res = await self.s.execute(
            update(SwitchModel)
            .where(
                SwitchModel.id == switch_id,
                SwitchModel.version == expected_version,
                SwitchModel.status == SwitchStatus.WARNING.value,
                SwitchModel.has_triggered.is_(False),
            )
            .values(status=SwitchStatus.ACTIVE.value, version=SwitchModel.version + 1)
            .execution_options(synchronize_session=False)
        )
        return res.rowcount == 1

    async def record_delivery(
        self,
        switch_id: int,
        *,
        sent: int,
        failed: int,
        status: DeliveryStatus,
        error: Optional[str],
    ) -> None:
        # только после claim: для несработавшего свитча это no-op
        await self.s.execute(
            update(SwitchModel)
            .where(SwitchModel.id == switch_id, SwitchModel.has_triggered.is_(True))
            .values(
                recipients_sent=sent,
                recipients_failed=failed,
                delivery_status=status.value,
                delivery_error=error[:1000] if error else None,
            )
            .execution_options(synchronize_session=False)
        )

    async def delete(self, switch_id: int) -> int:
        res = await self.s.execute(delete(SwitchModel).where(SwitchModel.id == switch_id))
        return res.rowcount or 0
