from typing import Iterable, Optional, Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from deadswitch.domain import Channel, Recipient
from deadswitch.models.recipient import RecipientModel


def to_record(m: RecipientModel) -> Recipient:
    return Recipient(
        id=m.id,
        switch_id=m.switch_id,
        address=m.address,
        channel=Channel(m.channel),
        name=m.name,
        personal_message=m.personal_message,
        content_filter=m.content_filter,
    )


class RecipientRepo:
    def __init__(self, s: AsyncSession) -> None:
        self.s = s

    async def list_for_switch(self, switch_id: int) -> Sequence[RecipientModel]:
        res = await self.s.execute(
            select(RecipientModel)
            .where(RecipientModel.switch_id == switch_id)
            .order_by(RecipientModel.id)
        )
        return res.scalars().all()

    async def count(self, switch_id: int) -> int:
        res = await self.s.execute(
            select(func.count(RecipientModel.id)).where(RecipientModel.switch_id == switch_id)
        )
        return int(res.scalar_one())

    async def add(
        self,
        switch_id: int,
        *,
        address: str,
        channel: Channel,
        name: Optional[str] = None,
        personal_message: Optional[str] = None,
        content_filter: Optional[str] = None,
    ) -> RecipientModel:
        r = RecipientModel(
            switch_id=switch_id,
            address=address,
            channel=channel.value,
            name=name,
            personal_message=personal_message,
            content_filter=content_filter,
        )
        self.s.add(r)
        await self.s.flush()
        return r

    async def add_many(self, switch_id: int, items: Iterable[dict]) -> None:
        for item in items:
            await self.add(switch_id, **item)

    async def remove(self, switch_id: int, recipient_id: int) -> bool:
        res = await self.s.execute(
            delete(RecipientModel).where(
                RecipientModel.id == recipient_id,
                RecipientModel.switch_id == switch_id,
            )
        )
        return (res.rowcount or 0) == 1

    async def remove_all(self, switch_id: int) -> int:
        res = await self.s.execute(delete(RecipientModel).where(RecipientModel.switch_id == switch_id))
        return res.rowcount or 0
