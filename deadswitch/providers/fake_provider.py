# deadswitch/providers/fake_provider.py
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Optional

from deadswitch.domain import Channel, OutboundMessage


@dataclass
class RecordingProvider:
    """
    Провайдер для dev и тестов: ничего не шлёт, складывает сообщения в sent.
    fail_addresses: адреса, на которые «отправка» всегда падает.
    """

    channel: Channel
    configured: bool = True
    fail_addresses: set[str] = field(default_factory=set)
    sent: list[OutboundMessage] = field(default_factory=list)
    attempts: int = 0
    delay: Optional[float] = None

    def is_configured(self) -> bool:
        return self.configured

    async def send(self, msg: OutboundMessage) -> None:
        self.attempts += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if msg.address in self.fail_addresses:
            raise ConnectionError(f"{self.channel.value} delivery refused")
        self.sent.append(msg)

    def sent_to(self, address: str) -> list[OutboundMessage]:
        return [m for m in self.sent if m.address == address]
