# deadswitch/services/notification_service.py
from __future__ import annotations

import asyncio
import logging
from typing import Mapping, Optional, Protocol

from deadswitch.domain import Channel, OutboundMessage
from deadswitch.errors import ChannelNotConfigured, DeliveryError

logger = logging.getLogger(__name__)


class NotificationChannel(Protocol):
    channel: Channel

    def is_configured(self) -> bool: ...

    async def send(self, msg: OutboundMessage) -> None: ...


class NotificationService:
    """
    Отправка одного сообщения по одному каналу: таймаут на попытку и
    ограниченные ретраи с экспоненциальной паузой.

    ChannelNotConfigured не ретраим: это ошибка конфигурации, а не сети.
    DeliveryError от самого провайдера тоже окончательный отказ.
    Таймаут не ретраим: wait_for отменяет только ожидание, а синхронная
    отправка в потоке может завершиться позже. Повтор рискует дублем раскрытия.
    """

    def __init__(
        self,
        providers: Mapping[Channel, NotificationChannel],
        *,
        timeout: float = 30.0,
        max_attempts: int = 3,
        retry_delay: float = 1.0,
        backoff: float = 2.0,
    ) -> None:
        self.providers = dict(providers)
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)
        self.retry_delay = retry_delay
        self.backoff = backoff

    def provider_for(self, channel: Channel) -> NotificationChannel:
        provider = self.providers.get(channel)
        if provider is None or not provider.is_configured():
            raise ChannelNotConfigured(f"channel {channel.value} is not configured")
        return provider

    def is_configured(self, channel: Channel) -> bool:
        provider = self.providers.get(channel)
        return provider is not None and provider.is_configured()

    async def send(self, msg: OutboundMessage, *, switch_id: Optional[int] = None) -> int:
        """Возвращает номер удачной попытки; после исчерпания поднимает DeliveryError."""
        provider = self.provider_for(msg.channel)
        delay = self.retry_delay
        last_exc: Optional[BaseException] = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                await asyncio.wait_for(provider.send(msg), timeout=self.timeout)
                return attempt
            except (ChannelNotConfigured, DeliveryError):
                raise
            except asyncio.TimeoutError as e:
                # исход неизвестен: поток провайдера мог дослать письмо, повтор дал бы дубль
                logger.warning(
                    "send timeout: channel=%s attempt=%d/%d, not retried",
                    msg.channel.value, attempt, self.max_attempts,
                    extra={"switch_id": switch_id or "-"},
                )
                raise DeliveryError(
                    f"{msg.channel.value} delivery timed out, outcome unknown: TimeoutError",
                    switch_id=switch_id,
                ) from e
            except Exception as e:
                last_exc = e
                logger.warning(
                    "send failed: channel=%s attempt=%d/%d error=%s",
                    msg.channel.value, attempt, self.max_attempts, type(e).__name__,
                    extra={"switch_id": switch_id or "-"},
                )
            if attempt < self.max_attempts:
                await asyncio.sleep(delay)
                delay *= self.backoff

        raise DeliveryError(
            f"{msg.channel.value} delivery failed after {self.max_attempts} attempts: "
            f"{type(last_exc).__name__}",
            switch_id=switch_id,
        ) from last_exc
